import sys
import logging
from typing import Dict, List, Optional, Tuple

from setproctitle import setproctitle

import runpod_boss.local.console as console
from runpod_boss.log import setup_logging
from runpod_boss.local.config import load_settings
from runpod_boss.local.errors import ConfigurationError

log = logging.getLogger("console")

DEFAULT_COMMAND = "start"
# Commands that supervise or change the workspace also log to the pod volume.
LOGGED_COMMANDS = {"start", "serve", "provision", "link"}
VALUE_FLAGS = {"--workspace": "WORKSPACE_DIR", "--profile": "APP_PROFILE", "--gpu": "GPU_PROFILE"}


def parse_args(argv: List[str]) -> Tuple[str, List[str], Dict[str, str], bool]:
    """
    Splits the command line into a command, its remaining arguments and setting overrides.

    :param argv: Arguments without the program name.
    :return: (command, args, overrides, verbose)
    :raises ConfigurationError: If a flag that takes a value has none.
    """
    command: Optional[str] = None
    args: List[str] = []
    overrides: Dict[str, str] = {}
    verbose = False

    remaining = list(argv)
    while remaining:
        token = remaining.pop(0)
        flag, _, inline_value = token.partition("=")
        if flag in VALUE_FLAGS:
            value = inline_value or (remaining.pop(0) if remaining else "")
            if not value:
                raise ConfigurationError(f"Option '{flag}' requires a value")
            overrides[VALUE_FLAGS[flag]] = value.lower() if flag != "--workspace" else value
        elif token == "--verbose":
            verbose = True
        elif command is None and not token.startswith("-"):
            command = token.lower()
        else:
            args.append(token)
    return command or DEFAULT_COMMAND, args, overrides, verbose


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the command line."""
    setup_logging(logging.INFO)
    try:
        command, args, overrides, verbose = parse_args(sys.argv[1:] if argv is None else argv)
        settings = load_settings(**overrides)
    except ConfigurationError as e:
        log.critical(f"Invalid configuration: {e}")
        return 1

    console_level = logging.DEBUG if verbose else logging.INFO
    setup_logging(console_level, settings.LOG_FILE_PATH if command in LOGGED_COMMANDS else None)

    if command in ("start", "serve"):
        setproctitle(f"runpod-boss - Supervisor ({settings.APP_PROFILE})")
    return console.execute_command(command, args, settings)


if __name__ == "__main__":
    sys.exit(main())
