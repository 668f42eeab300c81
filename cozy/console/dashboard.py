import logging
import threading
from typing import TYPE_CHECKING, Callable

from cozy.console.process import execute_command
from cozy.supervisor import ConfigurationError
from cozy.workflow import Dashboard

if TYPE_CHECKING:
    from cozy.workflow import ParallelSession

log = logging.getLogger(__name__)


class ConsoleDashboard(Dashboard):
    """
    Line-based dashboard for parallel workflows.

    Command output is printed as it arrives, prefixed by the command name, and
    liveness changes are logged. The user drives the commands from a prompt on
    stdin. Leaving the prompt for any reason shuts the session down, so no
    command outlives the dashboard.
    """

    def __init__(self, input_func: Callable[[str], str] = input) -> None:
        super().__init__()
        self._input = input_func
        self.console_lock = threading.Lock()

    def run(self, session: "ParallelSession") -> None:
        print(f"--- cozy: workflow \"{session.workflow.name}\" ---")
        print("Type 'help' for a list of commands, 'quit' to stop everything.")

        while not session.is_shutting_down:
            try:
                # The input prompt must be outside the lock to not block background threads
                command_line_str = self._input("> ")
            except EOFError:
                log.info("Input closed. Stopping workflow.")
                break
            except KeyboardInterrupt:
                # Only reached when embedded without the launcher's signal handlers.
                log.warning("Interrupted by user. Stopping workflow.")
                break

            command_line = command_line_str.strip().split()
            if not command_line:
                continue
            command, args = command_line[0].lower(), command_line[1:]

            with self.console_lock:
                try:
                    if execute_command(session, command, args):
                        break
                except ConfigurationError as e:
                    log.error(str(e))
                except Exception as e:
                    log.critical(f"An unexpected error occurred in the console: {e}", exc_info=True)
                    session.shutdown(e)
                    return

        session.shutdown()
