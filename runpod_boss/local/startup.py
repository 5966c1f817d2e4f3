import logging
from typing import TYPE_CHECKING, Optional

from runpod_boss.local.errors import ProvisioningError
from runpod_boss.local.gate import is_provisioned, mark_provisioned
from runpod_boss.local.linker import LinkReport, SharedResourceLinker, build_shared_mounts, prepare_shared_store
from runpod_boss.local.provision import (
    PlanReport, ProvisioningPlanner, build_provision_steps, build_runtime_binary_steps,
)
from runpod_boss.local.supervisor import ProcessManager, build_service_specs, build_warmup_command
from runpod_boss.local.supervisor import persistence, process_utils

if TYPE_CHECKING:
    from runpod_boss.local.config import MergedSettings

log = logging.getLogger(__name__)


def check_if_already_running(settings: "MergedSettings") -> bool:
    """
    Checks if a supervisor is already running based on the PID file.

    :param settings: The run's configuration.
    :return: True if already running, False otherwise.
    """
    pid_info = persistence.get_pid_info(settings.PID_FILE_PATH)
    if not pid_info:
        return False
    recorded_at = settings.PID_FILE_PATH.stat().st_mtime
    if any(process_utils.is_recorded_process_alive(p, recorded_at) for p in pid_info.values()):
        log.error("Services appear to be running already. Stop them before starting again.")
        return True
    return False


def provision(settings: "MergedSettings", dry_run: bool = False) -> PlanReport:
    """Runs every provisioning step of the configured profile."""
    planner = ProvisioningPlanner(settings)
    return planner.run(build_provision_steps(settings), dry_run=dry_run)


def link(settings: "MergedSettings") -> LinkReport:
    """Moves the applications' model folders into the shared store."""
    prepare_shared_store(settings)
    linker = SharedResourceLinker(settings)
    return linker.reconcile(build_shared_mounts(settings))


def ensure_runtime_binaries(settings: "MergedSettings") -> None:
    """
    Reinstalls the service binaries that live outside the persistent volume.

    A pod restart loses `filebrowser` and `ollama`; their on-PATH checks keep
    this a no-op while they are still installed. A failed install is logged
    and the affected service then fails to launch on its own.
    """
    try:
        ProvisioningPlanner(settings).run(build_runtime_binary_steps(settings))
    except ProvisioningError as e:
        log.error(f"Could not reinstall runtime binaries: {e}")


def serve(settings: "MergedSettings", manager: Optional[ProcessManager] = None) -> int:
    """
    Launches and supervises the services until they exit or a signal arrives.

    :param settings: The run's configuration.
    :param manager: An existing ProcessManager, mainly for tests.
    :return int: The supervisor's exit status.
    """
    if check_if_already_running(settings):
        return 1
    if settings.REINSTALL_RUNTIME_BINARIES:
        ensure_runtime_binaries(settings)
    manager = manager or ProcessManager(settings)
    return manager.supervise(build_service_specs(settings), build_warmup_command(settings))


def run_pod(settings: "MergedSettings", manager: Optional[ProcessManager] = None) -> int:
    """
    Brings the pod up: provisions and links a fresh workspace, then supervises.

    A workspace whose first boot completed is a fast restart: provisioning
    and linking are skipped entirely.

    :param settings: The run's configuration.
    :param manager: An existing ProcessManager, mainly for tests.
    :return int: The process exit status.
    :raises RunpodBossError: If provisioning or linking fails; no service is started then.
    """
    if is_provisioned(settings):
        log.info("Workspace already provisioned; fast restart.")
    else:
        log.info("Workspace not provisioned; running first-boot setup.")
        provision(settings)
        link(settings)
        mark_provisioned(settings)
    return serve(settings, manager)
