import logging
from pathlib import Path
from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from runpod_boss.local.config import MergedSettings

log = logging.getLogger(__name__)


def completion_marker(settings: "MergedSettings") -> Path:
    """The file written once provisioning and linking have both succeeded."""
    return settings.STATE_DIR / "provisioned.done"


def required_artifacts(settings: "MergedSettings") -> List[Path]:
    """Returns the application directories of the configured profile, then the completion marker."""
    artifacts = []
    if settings.manages_a1111:
        artifacts.append(settings.WEBUI_DIR)
    if settings.manages_comfyui:
        artifacts.append(settings.COMFYUI_DIR)
    artifacts.append(completion_marker(settings))
    return artifacts


def artifact_present(settings: "MergedSettings", path: Path) -> bool:
    if path == completion_marker(settings):
        return path.is_file()
    return path.is_dir()


def is_provisioned(settings: "MergedSettings") -> bool:
    """
    Decides whether the workspace can skip provisioning and linking.

    The application directories appear early in a first boot, so they alone
    do not prove the run finished; the completion marker does. A run that
    failed part-way leaves no marker and the next start provisions again.

    :param settings: The run's configuration.
    :return bool: True iff every application directory and the completion marker exist.
    """
    missing = [path for path in required_artifacts(settings) if not artifact_present(settings, path)]
    for path in missing:
        log.debug(f"Workspace artifact missing: {path}")
    return not missing


def mark_provisioned(settings: "MergedSettings") -> None:
    """Records a completed first boot so later starts take the fast-restart path."""
    marker = completion_marker(settings)
    marker.parent.mkdir(parents=True, exist_ok=True)
    marker.touch()
    log.info(f"Workspace provisioned; recorded in '{marker}'.")
