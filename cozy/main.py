import sys
import signal
import logging
from pathlib import Path
from typing import List, Optional

import setproctitle

from cozy.config import effective_settings as config
from cozy.console import ConsoleDashboard
from cozy.log import setup_logging
from cozy.project import load_project_config
from cozy.supervisor import CozyError
from cozy.workflow import ParallelSession, build_supervisors, run_sequence

log = logging.getLogger("cozy")

USAGE = "Usage: cozy <workflow> [--verbose]"
INTERRUPTED_EXIT_CODE = 130


def _install_shutdown_handlers(session: ParallelSession) -> None:
    """Routes SIGINT and SIGTERM to the session's shutdown coordinator."""
    def _handle_signal(signum, _frame):
        if session.is_shutting_down:
            return
        log.warning(f"Received {signal.Signals(signum).name}. Stopping workflow...")
        session.shutdown()
        raise SystemExit(0)

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)


def _interrupt_on_sigterm() -> None:
    """Turns SIGTERM into KeyboardInterrupt so a sequential run unwinds like on Ctrl-C."""
    def _handle_signal(signum, _frame):
        raise KeyboardInterrupt(signal.Signals(signum).name)

    signal.signal(signal.SIGTERM, _handle_signal)


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the cozy launcher."""
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = config.VERBOSE_LOGGING
    if "--verbose" in args:
        verbose = True
        args.remove("--verbose")

    setup_logging(logging.DEBUG if verbose else logging.INFO)
    log.debug(f"Effective settings: {config.as_dict()}")

    if not args:
        log.error("Missing workflow name!")
        print(USAGE)
        return 1

    workflow_name = args[0]
    root_dir = Path.cwd()

    try:
        project = load_project_config(root_dir)
        workflow = project.get_workflow(workflow_name)
        supervisors = build_supervisors(project.commands, root_dir=root_dir)
    except CozyError as e:
        log.error(str(e))
        return 1

    setproctitle.setproctitle(f"cozy - {workflow_name}")
    log.info(f'Starting workflow "{workflow_name}" from directory: "{root_dir}"...')

    try:
        if not workflow.parallel:
            _interrupt_on_sigterm()
            run_sequence(workflow, supervisors)
        else:
            session = ParallelSession(workflow, supervisors, ConsoleDashboard())
            _install_shutdown_handlers(session)
            session.run()
    except CozyError as e:
        log.error(str(e))
        return 1
    except KeyboardInterrupt:
        log.warning(f'Workflow "{workflow_name}" was interrupted.')
        return INTERRUPTED_EXIT_CODE
    return 0


if __name__ == "__main__":
    sys.exit(main())
