import logging
from typing import TYPE_CHECKING, List, Optional

from cozy.log import PROC_LOGGER_PREFIX
from cozy.supervisor import CommandSupervisor

if TYPE_CHECKING:
    from cozy.workflow import ParallelSession

log = logging.getLogger(__name__)


def _require_supervisor(session: "ParallelSession", args: List[str], usage: str) -> Optional[CommandSupervisor]:
    """Resolves the command named in `args`, printing the usage if it is missing."""
    if not args:
        print(f"Usage: {usage}")
        return None
    return session.supervisor(args[0])


def display_status(session: "ParallelSession") -> None:
    """Prints the liveness and supervision state of every command of the workflow."""
    print(f"\n--- Workflow \"{session.workflow.name}\" ---")
    for supervisor in session.commands:
        result = supervisor.probe()
        liveness = "running" if result.running else "not running"
        pid = supervisor.pid if supervisor.pid is not None else "-"
        print(
            f"  {supervisor.name:<20} {liveness:<12} state={supervisor.state.value:<8} "
            f"retries={supervisor.retry_count}/{supervisor.max_retries} pid={pid}"
        )
    print("---\n")


def handle_restart_command(session: "ParallelSession", args: List[str]) -> None:
    supervisor = _require_supervisor(session, args, "restart <command>")
    if supervisor:
        supervisor.restart()


def handle_start_command(session: "ParallelSession", args: List[str]) -> None:
    supervisor = _require_supervisor(session, args, "start <command>")
    if supervisor:
        supervisor.start(restart_when_fails=True)


def handle_stop_command(session: "ParallelSession", args: List[str]) -> None:
    supervisor = _require_supervisor(session, args, "stop <command>")
    if supervisor:
        supervisor.stop()


def handle_logs_command(session: "ParallelSession", args: List[str]) -> None:
    """
    Runs any known command once and streams its output to the console.
    The one-shot process is discarded as soon as its output ends.
    """
    supervisor = _require_supervisor(session, args, "logs <command>")
    if supervisor:
        viewer = logging.getLogger(f"{PROC_LOGGER_PREFIX}{supervisor.name}:logs")
        log.info(f"Running '{supervisor.name}' once ({supervisor.pretty_name})...")
        supervisor.run_with_logs(viewer.info)


def print_help() -> None:
    """Prints the help message for the dashboard console."""
    print("\nAvailable commands:")
    print("  status             - Show the liveness of every command in the workflow.")
    print("  restart <command>  - Restart a command and reset its retry counter.")
    print("  start <command>    - Start a command, stopping its current process first.")
    print("  stop <command>     - Stop a command and its whole process tree.")
    print("  logs <command>     - Run any configured command once and show its output.")
    print("  help               - Show this help message.")
    print("  quit               - Stop every command and exit.\n")
