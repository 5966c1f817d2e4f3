import logging
import threading
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

import psutil

from runpod_boss.local.app_process import build_env, get_popen_kwargs, log_process_output

if TYPE_CHECKING:
    from .supervisor import ProcessManager

log = logging.getLogger(__name__)


def _run_warmup(manager: "ProcessManager", argv: Sequence[str], env: Optional[Mapping[str, str]], delay: float):
    """
    Waits `delay` seconds, then runs the warm-up command once.
    Runs in a dedicated background thread; nothing it does reaches the services.

    :param manager: The ProcessManager instance.
    :param argv: The warm-up command.
    :param env: Environment overrides for the command.
    :param delay: Seconds to wait after the services started.
    """
    if manager.shutdown_signal_received.wait(delay):
        log.info("Shutdown requested before warm-up ran; skipping it.")
        return

    try:
        with manager.state_lock:
            if manager.shutdown_signal_received.is_set():
                return
            proc = psutil.Popen(list(argv), env=build_env(env), **get_popen_kwargs(capture_output=True))
            manager.warmup_proc = proc
    except OSError as e:
        log.error(f"Warm-up command '{argv[0]}' could not be started: {e}")
        return

    log.info(f"Warm-up started: {' '.join(argv)} (PID {proc.pid})")
    try:
        readers = log_process_output(proc, "warmup")
        returncode = proc.wait()
        for reader in readers:
            reader.join()
    except Exception as e:
        log.error(f"Error while running warm-up: {e}", exc_info=True)
        return

    if manager.shutdown_signal_received.is_set():
        log.info("Warm-up interrupted by shutdown.")
    elif returncode != 0:
        log.error(f"Warm-up '{' '.join(argv)}' failed with exit status {returncode}.")
    else:
        log.info("Warm-up finished.")


def start_warmup(
    manager: "ProcessManager",
    argv: Sequence[str],
    delay: float,
    env: Optional[Mapping[str, str]] = None,
) -> threading.Thread:
    """
    Starts a thread that runs a one-off warm-up command after a delay.

    :param manager: The ProcessManager instance.
    :param argv: The warm-up command.
    :param delay: Seconds to wait before running it.
    :param env: Environment overrides for the command.
    :return threading.Thread: The started daemon thread.
    """
    warmup_thread = threading.Thread(
        target=_run_warmup,
        args=(manager, argv, env, delay),
        daemon=True,
        name="WarmupThread"
    )
    manager.warmup_thread = warmup_thread
    warmup_thread.start()
    return warmup_thread


def stop_warmup(manager: "ProcessManager", timeout: float = 5) -> None:
    """
    Terminates the warm-up command if it is still running.

    Only the warm-up thread waits on its process; here we signal it and
    join the thread.
    """
    thread = manager.warmup_thread
    if thread is None or not thread.is_alive():
        return
    with manager.state_lock:
        proc = manager.warmup_proc
    if proc is not None:
        try:
            log.info(f"Stopping warm-up (PID {proc.pid}).")
            proc.terminate()
        except psutil.NoSuchProcess:
            pass
    thread.join(timeout)
    if thread.is_alive() and proc is not None:
        log.warning(f"Warm-up (PID {proc.pid}) ignored SIGTERM; killing it.")
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
        thread.join(timeout)
