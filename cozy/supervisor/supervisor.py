import logging
import threading
from pathlib import Path
from typing import List, Optional, Union

from cozy.config import effective_settings as config
from .errors import CommandFailedError
from .process_utils import ProcessHandle, run_script
from .types import CommandDefinition, LogHandler, ProbeResult, SupervisorState

log = logging.getLogger(__name__)

DONE_MARKER = "Done!"


class CommandSupervisor:
    """
    Supervises one named command and owns at most one live process for it.

    Processes launched through `start`/`restart` are watched: when one exits
    with a non-zero code and `restart_when_fails` was requested, it is launched
    again, at most `max_retries` times, unless the exit was caused by `stop`.
    `run` and `run_with_logs` are one-shot executions outside of supervision.

    Announcements and command output go to a single log subscriber (see
    `track_log`). Subscribers are called from background threads and must not
    call back into the supervisor synchronously.
    """

    def __init__(
        self,
        name: str,
        definition: CommandDefinition,
        root_dir: Union[str, Path] = ".",
        max_retries: Optional[int] = None,
    ) -> None:
        self.name = name
        self.definition = definition
        self.max_retries = config.MAX_RESTART_ATTEMPTS if max_retries is None else max_retries
        self.cwd = (Path(root_dir) / definition.working_dir).resolve()
        self.retry_count = 0
        self.restart_when_fails = True
        self.last_exit_code: Optional[int] = None
        self.state = SupervisorState.IDLE

        self._process: Optional[ProcessHandle] = None
        self._killing = False
        self._log_handler: Optional[LogHandler] = None
        self._lock = threading.RLock()

    #* --- Descriptive helpers ---
    @property
    def command_args(self) -> List[str]:
        """The argv launched for npm scripts and executables."""
        definition = self.definition
        if definition.npm_script:
            return [config.NPM_RUNNER, definition.npm_script, *definition.args]
        return [definition.executable, *definition.args]

    @property
    def pretty_name(self) -> str:
        definition = self.definition
        if definition.display_name:
            return definition.display_name
        if definition.is_script:
            return definition.script
        return f'{" ".join(self.command_args)} ("{definition.working_dir}")'

    @property
    def pid(self) -> Optional[int]:
        process = self._process
        return process.pid if process else None

    def __repr__(self) -> str:
        return f"<CommandSupervisor {self.name!r} state={self.state.value} pid={self.pid}>"

    #* --- Logging ---
    def track_log(self, handler: Optional[LogHandler]) -> None:
        """
        Registers the log subscriber. The last registration wins; lines emitted
        before a subscriber was registered are not replayed.
        """
        self._log_handler = handler

    def _log(self, line: str) -> None:
        handler = self._log_handler
        if handler is None:
            return
        try:
            handler(line)
        except Exception as e:
            log.error(f"Log subscriber of '{self.name}' failed: {e}", exc_info=True)

    def _announce(self, message: str, level: int = logging.DEBUG) -> None:
        log.log(level, f"[{self.name}] {message}")
        self._log(f"===== {message} =====")

    #* --- Supervised lifecycle ---
    def _spawn(self) -> ProcessHandle:
        return ProcessHandle(
            self.name,
            self.definition.script if self.definition.is_script else self.command_args,
            self.cwd,
            shell=self.definition.is_script,
            chunk_handler=self._log,
            on_exit=self._on_exit,
            kill_timeout=config.KILL_CONFIRM_TIMEOUT,
            collect_output=False,
        )

    def _launch(self) -> None:
        """Spawns a new watched process. Must be called with the lock held."""
        self._killing = False
        self._process = self._spawn()
        self.state = SupervisorState.RUNNING

    def _terminate(self, process: ProcessHandle) -> None:
        process.sever()
        process.kill()

    def start(self, restart_when_fails: bool = True) -> None:
        """
        Launches the command, stopping any live process first.

        This call does not wait for the command: a launch failure is reported
        through the exit path like any other failing exit.
        """
        self._announce(f'Running "{self.pretty_name}"...')
        if self._process is not None:
            self.stop()

        with self._lock:
            self.restart_when_fails = restart_when_fails
            self._launch()

    def stop(self) -> None:
        """
        Kills the live process and its descendants, waiting until they are gone.
        Auto-restart is suppressed for the killed process. Without a process only
        the announcement is emitted.
        """
        with self._lock:
            self._killing = True
            process = self._process
        self._announce(f'Stopping "{self.pretty_name}"...')
        if process is None:
            return

        self._terminate(process)

        with self._lock:
            if self._process is process:
                self._process = None
            self.state = SupervisorState.STOPPED

    def restart(self) -> None:
        """
        Resets the retry counter. A command that is not running, or that exited
        successfully, is launched again. A command that is still running is only
        stopped.
        """
        self._announce(f'Restarting "{self.pretty_name}"...', logging.INFO)
        with self._lock:
            self.retry_count = 0
            process = self._process
            if process is None or process.returncode == 0:
                self.restart_when_fails = True
                self._launch()
                return
            # Detached first so its exit does not trigger an auto-restart.
            self._process = None
            self.state = SupervisorState.STOPPED

        self._terminate(process)

    def _on_exit(self, process: ProcessHandle, exit_code: int) -> None:
        """Runs on the reader thread of `process` once its output stream closed."""
        with self._lock:
            if process is not self._process:
                return
            self._process = None
            self.last_exit_code = exit_code
            self._announce(f'Command "{self.pretty_name}" exited with code {exit_code}.')

            if self._killing or exit_code == 0 or not self.restart_when_fails:
                self.state = SupervisorState.STOPPED
                return

            if self.retry_count < self.max_retries:
                self.retry_count += 1
                self._announce(
                    f'Starting command "{self.pretty_name}" again '
                    f'(attempt: {self.retry_count}/{self.max_retries})',
                    logging.WARNING,
                )
                self._launch()
            else:
                self._announce(
                    f'Command "{self.pretty_name}" failed too many times ({self.max_retries}). '
                    "Please make sure it's valid!",
                    logging.ERROR,
                )
                self.state = SupervisorState.FAILED_PERMANENTLY

    #* --- Status ---
    def probe(self) -> ProbeResult:
        """Reports whether the supervised process is alive. Never raises."""
        try:
            process = self._process
            return ProbeResult(running=process is not None and process.is_running())
        except Exception as e:
            log.debug(f"Probe of '{self.name}' failed: {e}")
            return ProbeResult(running=False)

    #* --- One-shot execution ---
    def run(self) -> Union[str, ProcessHandle]:
        """
        Executes the command once, outside of supervision.

        :return: The combined output for scripts, which run synchronously. For
            executables, the in-flight `ProcessHandle`; call `result()` on it.
        :raises CommandFailedError: If a script exits non-zero.
        """
        if self.definition.is_script:
            return run_script(self.name, self.definition.script, self.cwd)
        return ProcessHandle(self.name, self.command_args, self.cwd, kill_timeout=config.KILL_CONFIRM_TIMEOUT)

    def run_with_logs(self, handler: LogHandler) -> Optional[ProcessHandle]:
        """
        Executes the command once and streams its output to `handler`, followed
        by a final "Done!" line. The spawned process tree is killed as soon as
        its output stream closes.

        :return: The in-flight `ProcessHandle` for executables, None for scripts.
        """
        if self.definition.is_script:
            try:
                output = run_script(self.name, self.definition.script, self.cwd)
            except CommandFailedError as e:
                output = str(e)
            handler(output)
            handler(DONE_MARKER)
            return None

        return ProcessHandle(
            self.name,
            self.command_args,
            self.cwd,
            chunk_handler=handler,
            on_exit=lambda _process, _code: handler(DONE_MARKER),
            kill_on_close=True,
            kill_timeout=config.KILL_CONFIRM_TIMEOUT,
            collect_output=False,
        )
