import logging
from typing import TYPE_CHECKING, List

from runpod_boss.local import startup
from runpod_boss.local.errors import RunpodBossError
from runpod_boss.local.console.handler import display_check, display_status, print_help

if TYPE_CHECKING:
    from runpod_boss.local.config import MergedSettings

log = logging.getLogger(__name__)


def _provision(settings: "MergedSettings", args: List[str]) -> int:
    report = startup.provision(settings, dry_run="--dry-run" in args)
    if report.pending:
        print(f"\n{len(report.pending)} step(s) would run: {', '.join(report.pending)}\n")
    return 0


def _link(settings: "MergedSettings") -> int:
    report = startup.link(settings)
    if report.discarded:
        log.warning(f"Discarded {len(report.discarded)} private model entries in favour of the shared copies.")
    return 0


def execute_command(command: str, args: List[str], settings: "MergedSettings") -> int:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'start', 'status').
    :param args: A list of arguments for the command.
    :param settings: The run's configuration.
    :return int: The process exit status.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "start": lambda: startup.run_pod(settings),
        "provision": lambda: _provision(settings, args),
        "link": lambda: _link(settings),
        "serve": lambda: startup.serve(settings),
        "status": lambda: display_status(settings),
        "check": lambda: display_check(settings),
        "help": print_help,
    }

    if command not in command_map:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return 2

    try:
        return command_map[command]()
    except RunpodBossError as e:
        log.critical(str(e))
        return 1
