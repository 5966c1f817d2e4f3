import logging
import os
import subprocess
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional


def get_popen_kwargs(capture_output: bool, new_session: bool = True) -> Dict[str, Any]:
    """
    Returns the keyword arguments shared by every child process we spawn.

    Children run in their own session so a terminal Ctrl+C reaches only the
    supervisor, which then forwards the request itself.

    :param capture_output: If True, stdout/stderr are piped for logging.
    :param new_session: If True, the child is detached from our session.
    :return dict: Keyword arguments for Popen.
    """
    kwargs: Dict[str, Any] = {"stdin": subprocess.DEVNULL, "start_new_session": new_session}
    if capture_output:
        kwargs["stdout"] = subprocess.PIPE
        kwargs["stderr"] = subprocess.PIPE
    return kwargs


def build_env(overrides: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Returns a copy of the current environment with `overrides` applied."""
    env = dict(os.environ)
    if overrides:
        env.update({key: str(value) for key, value in overrides.items()})
    return env


def _read_pipe(pipe, process_name, log_level):
    """Read from a pipe and log each line under the process's logger."""
    proc_logger = logging.getLogger(f"proc.{process_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            proc_logger.log(log_level, line)
    except (OSError, ValueError) as e:
        proc_logger.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, process_name: str) -> List[threading.Thread]:
    """
    Reads a process's stdout/stderr in threads and logs the output.

    This function spawns background daemon threads to consume the output pipes
    of a subprocess, preventing the pipes from filling up and blocking the child
    process. The lines are logged as-is; they are never interpreted.

    :param process: The `subprocess.Popen` object to monitor.
    :param process_name: The logical name of the process for logging context.
    :return list: The reader threads, so callers can join them.
    """
    readers = []
    if process.stdout:
        readers.append(threading.Thread(
            target=_read_pipe,
            args=(process.stdout, process_name, logging.INFO),
            daemon=True,
            name=f"{process_name}-stdout"
        ))
    if process.stderr:
        readers.append(threading.Thread(
            target=_read_pipe,
            args=(process.stderr, process_name, logging.WARNING),
            daemon=True,
            name=f"{process_name}-stderr"
        ))
    for reader in readers:
        reader.start()
    return readers


def run_command(
    argv: List[str],
    name: str,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """
    Runs a command to completion, streaming its output to the `proc.<name>` logger.

    :param argv: Executable and arguments.
    :param name: Logical name used for the output logger.
    :param cwd: Working directory, or None for the current one.
    :param env: Environment overrides.
    :return int: The command's exit status.
    :raises OSError: If the executable cannot be started.
    """
    process = subprocess.Popen(
        argv,
        cwd=str(cwd) if cwd else None,
        env=build_env(env),
        **get_popen_kwargs(capture_output=True, new_session=False),
    )
    readers = log_process_output(process, name)
    returncode = process.wait()
    for reader in readers:
        reader.join()
    return returncode
