import logging
from typing import TYPE_CHECKING, List

from cozy.console.handler import (
    display_status, handle_logs_command, handle_restart_command,
    handle_start_command, handle_stop_command, print_help,
)

if TYPE_CHECKING:
    from cozy.workflow import ParallelSession

log = logging.getLogger(__name__)

EXIT_COMMANDS = {"quit", "exit", "q"}


def execute_command(session: "ParallelSession", command: str, args: List[str]) -> bool:
    """
    Executes a single command from the user.

    :param session: The running parallel session.
    :param command: The main command string (e.g., 'restart', 'status').
    :param args: A list of arguments for the command.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    if command in EXIT_COMMANDS:
        return True

    command_map = {
        "status": lambda: display_status(session),
        "restart": lambda: handle_restart_command(session, args),
        "start": lambda: handle_start_command(session, args),
        "stop": lambda: handle_stop_command(session, args),
        "logs": lambda: handle_logs_command(session, args),
        "help": print_help,
    }

    if command in command_map:
        command_map[command]()
    else:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
    return False
