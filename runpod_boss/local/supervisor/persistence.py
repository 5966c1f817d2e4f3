import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from .supervisor import ProcessManager

log = logging.getLogger(__name__)


def get_pid_info(pid_file: Path) -> Optional[Dict[str, int]]:
    """
    Reads the PID file from disk and returns its contents.

    :param pid_file: Location of the PID file.
    :return: A dictionary of PIDs if the file exists and is valid, else None.
    """
    if not pid_file.exists():
        return None
    try:
        with pid_file.open("r") as f:
            pids = json.load(f)
        if not isinstance(pids, dict):
            pid_file.unlink()
            return None
        return pids
    except (json.JSONDecodeError, IOError):
        pid_file.unlink(missing_ok=True)
        return None

def write_pid_file(manager: "ProcessManager") -> None:
    """
    Atomically writes the current running process PIDs to the PID file.

    :param manager: The ProcessManager instance.
    """
    pid_file = manager.settings.PID_FILE_PATH
    with manager.state_lock:
        pid_dict = {name: proc.pid for name, proc in manager.running_procs.items()}
    temp_pid_path = pid_file.with_suffix(".tmp")
    try:
        pid_file.parent.mkdir(parents=True, exist_ok=True)
        with temp_pid_path.open("w") as f:
            json.dump(pid_dict, f, indent=4)
        temp_pid_path.replace(pid_file)
    except (IOError, OSError) as e:
        log.error(f"Failed to write PID file: {e}", exc_info=True)
    finally:
        temp_pid_path.unlink(missing_ok=True)

def remove_pid_file(pid_file: Path) -> None:
    pid_file.unlink(missing_ok=True)
    log.debug("Cleaned up PID file.")
