import time
import logging
import threading
from typing import Dict, List, Optional

from cozy.config import effective_settings as config
from cozy.log import PROC_LOGGER_PREFIX
from cozy.supervisor import CommandSupervisor, LogHandler, ProbeResult, Workflow
from .engine import Supervisors, resolve_command, resolve_workflow

log = logging.getLogger(__name__)


class Dashboard:
    """
    Observer of a parallel session.

    The base implementation writes command output to the `proc.<name>` loggers,
    logs liveness changes, and simply waits for the session to be shut down.
    """

    def __init__(self) -> None:
        self._last_status: Dict[str, bool] = {}

    def log_handler(self, name: str) -> LogHandler:
        return logging.getLogger(f"{PROC_LOGGER_PREFIX}{name}").info

    def report_status(self, name: str, result: ProbeResult) -> None:
        previous = self._last_status.get(name)
        self._last_status[name] = result.running
        if previous is None or previous == result.running:
            return
        if result.running:
            log.info(f"Command '{name}' is running.")
        else:
            log.warning(f"Command '{name}' is not running.")

    def last_status(self, name: str) -> Optional[bool]:
        return self._last_status.get(name)

    def run(self, session: "ParallelSession") -> None:
        """Blocks for the lifetime of the session."""
        session.wait()


class ParallelSession:
    """
    Runs every command of a workflow concurrently for the lifetime of the session.

    Each command is started with auto-restart enabled, its output is routed to
    the dashboard, and its liveness is probed on a fixed period. `shutdown` is
    the single coordinator that tears the session down; it is safe to call from
    the dashboard, a signal handler, or an error boundary, and only the first
    call has an effect.
    """

    def __init__(
        self,
        workflow: Workflow,
        supervisors: Supervisors,
        dashboard: Optional[Dashboard] = None,
        probe_interval: Optional[float] = None,
        settle_time: Optional[float] = None,
    ) -> None:
        self.workflow = workflow
        self.supervisors = supervisors
        self.dashboard = dashboard if dashboard is not None else Dashboard()
        self.probe_interval = config.PROBE_INTERVAL_SECONDS if probe_interval is None else probe_interval
        self.settle_time = config.SHUTDOWN_SETTLE_SECONDS if settle_time is None else settle_time

        self.commands: List[CommandSupervisor] = []
        self._lock = threading.Lock()
        self._shutdown_started = False
        self._stop_probing = threading.Event()
        self._finished = threading.Event()
        self._probe_thread: Optional[threading.Thread] = None

    def supervisor(self, name: str) -> CommandSupervisor:
        """Looks up any known command, not only the ones in this workflow."""
        return resolve_command(self.supervisors, name)

    def start(self) -> None:
        """
        Starts every command of the workflow and the liveness checker.

        :raises ConfigurationError: If a command name does not resolve; nothing is started then.
        """
        self.commands = resolve_workflow(self.workflow, self.supervisors)
        log.info(f'Starting {len(self.commands)} commands of workflow "{self.workflow.name}" in parallel.')

        for supervisor in self.commands:
            supervisor.track_log(self.dashboard.log_handler(supervisor.name))
            supervisor.start(restart_when_fails=True)

        self._probe_thread = threading.Thread(
            target=self._probe_loop,
            daemon=True,
            name="LivenessCheckThread"
        )
        self._probe_thread.start()

    def run(self) -> None:
        """Starts the session, hands control to the dashboard, and shuts down afterwards."""
        try:
            self.start()
            self.dashboard.run(self)
        except Exception as e:
            self.shutdown(e)
            raise
        self.shutdown()

    #* --- Liveness ---
    def probe_all(self) -> Dict[str, ProbeResult]:
        """Probes every command of the workflow and reports the results to the dashboard."""
        results = {}
        for supervisor in self.commands:
            try:
                result = supervisor.probe()
            except Exception as e:
                log.debug(f"Probe of '{supervisor.name}' raised: {e}")
                result = ProbeResult(running=False)
            results[supervisor.name] = result
            self.dashboard.report_status(supervisor.name, result)
        return results

    def status(self) -> Dict[str, ProbeResult]:
        return {supervisor.name: supervisor.probe() for supervisor in self.commands}

    def _probe_loop(self) -> None:
        """Target of the liveness thread. Ticks on a fixed schedule until shutdown."""
        next_tick = time.monotonic() + self.probe_interval
        while not self._stop_probing.wait(max(0.0, next_tick - time.monotonic())):
            next_tick += self.probe_interval
            try:
                self.probe_all()
            except Exception as e:
                log.error(f"Liveness check failed: {e}", exc_info=True)
        log.debug("Liveness check thread has stopped.")

    #* --- Shutdown ---
    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown_started

    def shutdown(self, error: Optional[BaseException] = None) -> None:
        """
        Stops every command of the workflow and the liveness checker.

        A failure to stop one command is logged and does not prevent stopping the
        others. Returns after giving in-flight stops `settle_time` seconds.

        :param error: The unrecoverable error that triggered the shutdown, if any.
        """
        with self._lock:
            if self._shutdown_started:
                return
            self._shutdown_started = True

        if error is not None:
            log.critical(f"Shutting down after an unrecoverable error: {error}", exc_info=error)

        log.info(f'Stopping workflow "{self.workflow.name}"...')
        self._stop_probing.set()
        probe_thread = self._probe_thread
        if probe_thread is not None and probe_thread is not threading.current_thread():
            probe_thread.join(timeout=self.probe_interval)

        for supervisor in self.commands:
            try:
                supervisor.stop()
            except Exception as e:
                log.error(f"Failed to stop command '{supervisor.name}': {e}", exc_info=True)

        time.sleep(self.settle_time)
        log.info(f'Workflow "{self.workflow.name}" stopped.')
        self._finished.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until the session has been shut down."""
        return self._finished.wait(timeout)


def run_parallel(
    workflow: Workflow,
    supervisors: Supervisors,
    dashboard: Optional[Dashboard] = None,
) -> ParallelSession:
    """Runs a parallel workflow until its session is shut down."""
    session = ParallelSession(workflow, supervisors, dashboard)
    session.run()
    return session
