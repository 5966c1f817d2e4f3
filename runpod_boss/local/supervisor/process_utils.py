import logging
from typing import TYPE_CHECKING, List

import psutil

from runpod_boss.local.app_process import build_env, get_popen_kwargs, log_process_output
from runpod_boss.local.errors import LaunchError
from .services import ServiceSpec

if TYPE_CHECKING:
    from .supervisor import ProcessManager

log = logging.getLogger(__name__)


#* --- Process Status & Monitoring ---
def pid_exists(pid: int) -> bool:
    """A wrapper for psutil.pid_exists for easy testing/mocking if needed."""
    return psutil.pid_exists(pid)

def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)

def is_recorded_process_alive(pid: int, recorded_at: float) -> bool:
    """
    Checks that `pid` is still the process that was recorded at `recorded_at`.

    A PID file can survive a pod restart; a live process created after the
    file was written has merely reused the PID.
    """
    if not pid_exists(pid):
        return False
    try:
        return get_process_from_pid(pid).create_time() <= recorded_at
    except psutil.Error:
        return False

def reap_exited(manager: "ProcessManager") -> List[str]:
    """
    Removes services that exited on their own from the running set.

    Siblings are left alone; an exit is logged with its return code.

    :param manager: The ProcessManager instance.
    :return list: Names of the services that were reaped.
    """
    reaped = []
    with manager.state_lock:
        for name, proc in list(manager.running_procs.items()):
            returncode = proc.poll()
            if returncode is None:
                continue
            manager.running_procs.pop(name)
            manager.exit_codes[name] = returncode
            reaped.append(name)
            if name in manager.signalled:
                log.info(f"Service '{name}' (PID {proc.pid}) stopped with code {returncode}.")
            else:
                log.warning(
                    f"Service '{name}' (PID {proc.pid}) exited on its own with code {returncode}. "
                    f"{len(manager.running_procs)} service(s) still running."
                )
    return reaped

#* --- Process Creation ---
def launch_process(manager: "ProcessManager", spec: ServiceSpec) -> psutil.Popen:
    """
    Launches a single service and adds it to the manager's tracking dictionary.

    :param manager: The ProcessManager instance.
    :param spec: The service to launch.
    :return psutil.Popen: The handle of the new process.
    :raises LaunchError: If the working directory is missing or the executable cannot be started.
    """
    log.info(f"Starting service: {spec.name}...")
    if not spec.cwd.is_dir():
        raise LaunchError(spec.name, f"working directory '{spec.cwd}' does not exist")

    capture = manager.settings.CAPTURE_SERVICE_OUTPUT
    try:
        p = psutil.Popen(
            list(spec.command),
            cwd=str(spec.cwd),
            env=build_env(spec.env),
            **get_popen_kwargs(capture_output=capture),
        )
    except OSError as e:
        raise LaunchError(spec.name, f"could not execute '{spec.command[0]}': {e}") from e

    if capture:
        log_process_output(p, spec.name)
    with manager.state_lock:
        manager.running_procs[spec.name] = p
    log.info(f"{spec.name} started with PID: {p.pid}")
    return p
