import logging
from typing import TYPE_CHECKING, Dict, List, Set

import psutil

from runpod_boss.local.errors import ShutdownTimeout

if TYPE_CHECKING:
    from .supervisor import ProcessManager

log = logging.getLogger(__name__)


def identify_processes_to_stop(manager: "ProcessManager") -> Dict[str, List[psutil.Process]]:
    """
    Collects every still-running service together with its descendants.

    :param manager: The ProcessManager instance.
    :return: A mapping of service name to [service process, *descendants].
    """
    targets: Dict[str, List[psutil.Process]] = {}
    with manager.state_lock:
        for name, proc in manager.running_procs.items():
            if proc.poll() is not None:
                continue
            try:
                descendants = proc.children(recursive=True)
            except psutil.NoSuchProcess:
                descendants = []
            targets[name] = [proc, *descendants]
    return targets


def _terminate_processes(manager: "ProcessManager", targets: Dict[str, List[psutil.Process]]) -> None:
    """Sends SIGTERM to each service tree, at most once per service."""
    for name, procs in targets.items():
        if name in manager.signalled:
            log.debug(f"Service '{name}' was already asked to stop; not signalling again.")
            continue
        manager.signalled.add(name)
        for proc in procs:
            try:
                log.debug(f"Sending SIGTERM to '{name}' (PID {proc.pid})")
                proc.terminate()
            except psutil.NoSuchProcess:
                log.debug(f"Process {proc.pid} of '{name}' already exited.")
                continue


def _forceful_kill(manager: "ProcessManager", alive: List[psutil.Process], owners: Dict[int, str]) -> None:
    """Forcefully kills processes that outlived the grace period."""
    if not alive:
        return

    timeout = manager.settings.GRACEFUL_SHUTDOWN_TIMEOUT
    for name in sorted({owners[p.pid] for p in alive}):
        log.error(str(ShutdownTimeout(name, timeout)))
    for proc in alive:
        try:
            log.warning(f"Killing stubborn process of '{owners[proc.pid]}' (PID {proc.pid}).")
            proc.kill()
        except psutil.NoSuchProcess:
            continue
    psutil.wait_procs(alive, timeout=5)


def graceful_shutdown_sequence(manager: "ProcessManager") -> Set[str]:
    """
    Stops every running service: SIGTERM once, a shared grace period, then SIGKILL.

    All services are waited on concurrently, so the sequence takes as long
    as the slowest service rather than the sum of them.

    :param manager: The ProcessManager instance.
    :return set: Names of the services that had to be killed.
    """
    targets = identify_processes_to_stop(manager)
    if not targets:
        log.info("No running services found to stop.")
        return set()

    owners = {proc.pid: name for name, procs in targets.items() for proc in procs}
    log.info(f"Initiating graceful shutdown for {len(targets)} service(s)...")
    _terminate_processes(manager, targets)

    procs_list = [proc for procs in targets.values() for proc in procs]
    try:
        _, alive = psutil.wait_procs(procs_list, timeout=manager.settings.GRACEFUL_SHUTDOWN_TIMEOUT)
    except psutil.NoSuchProcess:
        alive = []

    killed = {owners[p.pid] for p in alive}
    _forceful_kill(manager, alive, owners)
    return killed
