import sys
import psutil
import logging
import threading
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .errors import CommandFailedError

log = logging.getLogger(__name__)

# Exit code reported for commands that could not be launched at all.
LAUNCH_FAILURE_EXIT_CODE = 127

ExitHandler = Callable[["ProcessHandle", int], None]


#* --- Process Creation ---
def _get_popen_kwargs() -> Dict[str, Any]:
    """Returns platform-specific keyword arguments for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    # A new session keeps the command's process tree apart from ours.
    return {"start_new_session": True}


def run_script(command_name: str, script: str, cwd: Union[str, Path]) -> str:
    """
    Runs a shell one-shot synchronously and returns its combined output.

    :param command_name: The logical name of the command, used in errors.
    :param script: The shell script body.
    :param cwd: The working directory.
    :return: The combined stdout/stderr text.
    :raises CommandFailedError: If the script exits non-zero or cannot be launched.
    """
    log.debug(f"Running script for '{command_name}': {script}")
    try:
        completed = subprocess.run(
            script, shell=True, cwd=str(cwd),
            stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
        )
    except OSError as e:
        raise CommandFailedError(command_name, None, str(e)) from e

    output = completed.stdout.decode("utf-8", errors="replace")
    if completed.returncode != 0:
        raise CommandFailedError(command_name, completed.returncode, output)
    return output


#* --- Process Termination ---
def kill_tree(process: subprocess.Popen, timeout: float) -> None:
    """
    Kills a process and all of its descendants with SIGKILL and waits for them.

    Descendants are collected before the parent is killed, otherwise they would
    be re-parented and lost. Processes that are already gone count as killed.

    :param process: The `subprocess.Popen` object at the root of the tree.
    :param timeout: Seconds to wait for the tree to disappear.
    """
    try:
        children = psutil.Process(process.pid).children(recursive=True)
    except psutil.Error:
        children = []

    for child in children:
        try:
            child.kill()
        except psutil.NoSuchProcess:
            continue

    if process.poll() is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass

    try:
        process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        log.warning(f"Process {process.pid} did not exit within {timeout}s after SIGKILL.")

    _, alive = psutil.wait_procs(children, timeout=timeout)
    for proc in alive:
        log.warning(f"Descendant process {proc.pid} survived SIGKILL.")


class ProcessHandle:
    """
    Owns one spawned OS process and the thread that drains its output.

    stdout and stderr are merged into a single pipe. Each non-empty line is
    handed to `chunk_handler` as it arrives; once the stream closes the process
    is reaped (its tree is killed first when `kill_on_close` is set) and
    `on_exit` is called with the exit code from the reader thread.

    Output is kept for `result` unless `collect_output` is off, as it is for
    long-running supervised commands whose lines only go to their handler.

    A launch failure (missing executable, missing working directory) never
    raises from the constructor: it is reported asynchronously through
    `chunk_handler` and `on_exit` with exit code 127.
    """

    def __init__(
        self,
        name: str,
        args: Union[str, Sequence[str]],
        cwd: Union[str, Path],
        shell: bool = False,
        chunk_handler: Optional[Callable[[str], None]] = None,
        on_exit: Optional[ExitHandler] = None,
        kill_on_close: bool = False,
        kill_timeout: float = 5,
        collect_output: bool = True,
    ) -> None:
        self.name = name
        self.launch_error: Optional[OSError] = None
        self._chunk_handler = chunk_handler
        self._on_exit = on_exit
        self._kill_on_close = kill_on_close
        self._kill_timeout = kill_timeout
        self._collect_output = collect_output
        self._lines: List[str] = []
        self._severed = False
        self._finished = threading.Event()
        self._exit_code: Optional[int] = None

        try:
            self.popen: Optional[subprocess.Popen] = subprocess.Popen(
                args, shell=shell, cwd=str(cwd),
                stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                **_get_popen_kwargs()
            )
        except OSError as e:
            self.popen = None
            self.launch_error = e
            target = self._report_launch_failure
        else:
            log.debug(f"Process '{name}' started with PID: {self.popen.pid}")
            target = self._read_output

        self._thread = threading.Thread(target=target, daemon=True, name=f"cozy-{name}")
        self._thread.start()

    @property
    def pid(self) -> Optional[int]:
        return self.popen.pid if self.popen else None

    @property
    def returncode(self) -> Optional[int]:
        """The exit code, or None while the process is still alive."""
        if self.popen is None:
            return self._exit_code
        return self.popen.poll()

    @property
    def output(self) -> str:
        return "\n".join(self._lines)

    def is_running(self) -> bool:
        return self.popen is not None and self.popen.poll() is None

    def done(self) -> bool:
        return self._finished.is_set()

    def sever(self) -> None:
        """
        Detaches the process from its observers: stdin is closed and no further
        output is forwarded. Failures are ignored.
        """
        self._severed = True
        if self.popen is not None and self.popen.stdin is not None:
            try:
                self.popen.stdin.close()
            except (OSError, ValueError):
                pass

    def kill(self) -> None:
        """Kills the whole process tree and waits for it to disappear."""
        if self.popen is not None:
            kill_tree(self.popen, self._kill_timeout)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until the output stream closed and the exit was handled."""
        return self._finished.wait(timeout)

    def result(self, timeout: Optional[float] = None) -> str:
        """
        Waits for the process and returns its combined output.

        :raises TimeoutError: If the process is still running after `timeout`.
        :raises CommandFailedError: If the process exited non-zero or never launched.
        """
        if not self._finished.wait(timeout):
            raise TimeoutError(f"Command '{self.name}' is still running after {timeout}s.")
        if self.launch_error is not None:
            raise CommandFailedError(self.name, None, str(self.launch_error))
        if self._exit_code != 0:
            raise CommandFailedError(self.name, self._exit_code, self.output)
        return self.output

    def _emit(self, line: str) -> None:
        if self._collect_output:
            self._lines.append(line)
        if self._severed or self._chunk_handler is None:
            return
        try:
            self._chunk_handler(line)
        except Exception as e:
            log.error(f"Error in output handler of '{self.name}': {e}", exc_info=True)

    def _read_output(self) -> None:
        """Target of the reader thread. Forwards output lines, then reaps the process."""
        pipe = self.popen.stdout
        try:
            for line_bytes in iter(pipe.readline, b""):
                line = line_bytes.decode("utf-8", errors="replace").rstrip()
                if not line:
                    continue
                self._emit(line)
        except (OSError, ValueError) as e:
            log.debug(f"Pipe reader for {self.name} stream exited: {e}")
        finally:
            pipe.close()

        if self._kill_on_close:
            self.kill()
        self._finish(self.popen.wait())

    def _report_launch_failure(self) -> None:
        log.error(f"Failed to launch '{self.name}': {self.launch_error}")
        self._emit(f"Failed to launch: {self.launch_error}")
        self._finish(LAUNCH_FAILURE_EXIT_CODE)

    def _finish(self, exit_code: int) -> None:
        self._exit_code = exit_code
        try:
            if self._on_exit is not None:
                self._on_exit(self, exit_code)
        except Exception as e:
            log.error(f"Exit handler of '{self.name}' failed: {e}", exc_info=True)
        finally:
            self._finished.set()
