import signal
import time
import logging
import threading
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Set

import psutil

from runpod_boss.local.errors import LaunchError
from runpod_boss.local.supervisor import background_tasks, persistence, process_utils, shutdown
from runpod_boss.local.supervisor.services import ServiceSpec, prepare_runtime

if TYPE_CHECKING:
    from runpod_boss.local.config import MergedSettings

log = logging.getLogger(__name__)


class ProcessManager:
    """
    Launches the pod's services once, watches them, and drains them on a
    termination request.

    A service that exits on its own is logged and dropped; it is never
    restarted and its siblings keep running.
    """

    def __init__(self, settings: "MergedSettings") -> None:
        self.settings = settings
        self.running_procs: Dict[str, psutil.Popen] = {}
        self.exit_codes: Dict[str, int] = {}
        self.launch_errors: Dict[str, LaunchError] = {}
        self.signalled: Set[str] = set()
        self.killed: Set[str] = set()
        self.warmup_proc: Optional[psutil.Popen] = None
        self.warmup_thread: Optional[threading.Thread] = None

        self.state_lock = threading.RLock()
        self.shutdown_signal_received = threading.Event()
        self.start_time: Optional[float] = None
        self._previous_handlers: Dict[int, object] = {}

    def start_all(self, specs: Iterable[ServiceSpec]) -> None:
        """
        Starts every service. A service that cannot be launched is logged and
        skipped; the others still start.

        :param specs: The services to launch, in order.
        :raises LaunchError: If not a single service could be launched.
        """
        specs = list(specs)
        log.info("=" * 20 + " Starting Services " + "=" * 20)
        self.start_time = time.time()
        prepare_runtime(self.settings)

        for spec in specs:
            try:
                process_utils.launch_process(self, spec)
            except LaunchError as e:
                log.error(str(e))
                self.launch_errors[spec.name] = e

        if specs and not self.running_procs:
            raise LaunchError("all", f"none of the {len(specs)} service(s) could be started")

        persistence.write_pid_file(self)
        log.info(
            f"{len(self.running_procs)} of {len(specs)} service(s) started in "
            f"{time.time() - self.start_time:.2f} seconds."
        )

    #* --- Signals ---
    def install_signal_handlers(self) -> None:
        """Routes SIGINT and SIGTERM to request_shutdown. Must be called from the main thread."""
        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.signal(signum, self.request_shutdown)

    def restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def request_shutdown(self, signum: Optional[int] = None, frame=None) -> None:
        """Asks the wait loop to drain the services. Safe to call repeatedly and from a signal handler."""
        if self.shutdown_signal_received.is_set():
            return
        if signum is not None:
            log.info(f"Received {signal.Signals(signum).name}; shutting down services.")
        self.shutdown_signal_received.set()

    #* --- Supervision ---
    def wait(self) -> int:
        """
        Blocks until every service has exited.

        :return int: 0 once the services are drained.
        """
        poll_interval = self.settings.SUPERVISOR_POLL_INTERVAL
        while True:
            process_utils.reap_exited(self)
            if not self.running_procs:
                log.info("All services have exited.")
                background_tasks.stop_warmup(self)
                persistence.remove_pid_file(self.settings.PID_FILE_PATH)
                break
            if self.shutdown_signal_received.wait(poll_interval):
                self.stop_all()
                break
        return 0

    def stop_all(self) -> None:
        """Stops every running service and the warm-up task."""
        self.shutdown_signal_received.set()
        background_tasks.stop_warmup(self)

        self.killed |= shutdown.graceful_shutdown_sequence(self)
        process_utils.reap_exited(self)
        persistence.remove_pid_file(self.settings.PID_FILE_PATH)

        for name, code in sorted(self.exit_codes.items()):
            log.info(f"Service '{name}' exit status: {code}")
        if self.start_time:
            log.info(f"Service stop sequence completed. Total runtime: {time.strftime('%H:%M:%S', time.gmtime(time.time() - self.start_time))}")
        else:
            log.info("Service stop sequence completed.")

    def get_pid_info(self) -> Dict[str, int]:
        """
        Retrieves the current process IDs from the PID file.

        :return: A dictionary of service names and their PIDs, empty when there is no valid file.
        """
        return persistence.get_pid_info(self.settings.PID_FILE_PATH) or {}

    def supervise(self, specs: Iterable[ServiceSpec], warmup=None) -> int:
        """
        Runs the whole supervision lifecycle in the calling (main) thread.

        :param specs: The services to launch.
        :param warmup: Optional (argv, env) of a one-off command run after WARMUP_DELAY_SECONDS.
        :return int: The supervisor's exit status.
        :raises LaunchError: If not a single service could be launched.
        """
        self.install_signal_handlers()
        try:
            self.start_all(specs)
            if warmup is not None:
                argv, env = warmup
                background_tasks.start_warmup(self, argv, self.settings.WARMUP_DELAY_SECONDS, env)
            return self.wait()
        except Exception:
            if self.running_procs:
                log.critical("Supervisor failed; stopping the services it started.")
                self.stop_all()
            raise
        finally:
            self.restore_signal_handlers()
