"""Unit tests for the command supervisor.

These tests spawn real child processes from the current interpreter.
"""

import sys
import time

import psutil
import pytest

from cozy.supervisor import (
    DONE_MARKER,
    CommandDefinition,
    CommandFailedError,
    CommandSupervisor,
    ProbeResult,
    ProcessHandle,
    SupervisorState,
)
from tests.conftest import EXIT_FAILURE, EXIT_SUCCESS, SLEEP_FOREVER, LogRecorder, process_gone, wait_until


def test_stop_without_process_is_harmless(make_supervisor) -> None:
    supervisor = make_supervisor()

    supervisor.stop()
    supervisor.stop()

    assert supervisor.pid is None
    assert supervisor.probe() == ProbeResult(running=False)


def test_stop_without_process_still_announces(make_supervisor, recorder: LogRecorder) -> None:
    supervisor = make_supervisor()
    supervisor.track_log(recorder)

    supervisor.stop()

    assert recorder.count("Stopping") == 1
    assert supervisor.pid is None


def test_probe_follows_process_lifetime(make_supervisor) -> None:
    supervisor = make_supervisor("import time; time.sleep(1)")
    assert supervisor.state is SupervisorState.IDLE

    supervisor.start(restart_when_fails=False)

    assert wait_until(lambda: supervisor.probe().running)
    assert supervisor.state is SupervisorState.RUNNING
    assert wait_until(lambda: not supervisor.probe().running)
    assert wait_until(lambda: supervisor.pid is None)
    assert supervisor.last_exit_code == 0
    assert supervisor.state is SupervisorState.STOPPED


def test_output_and_announcements_reach_subscriber(make_supervisor, recorder: LogRecorder) -> None:
    supervisor = make_supervisor("print('hello from child')")
    supervisor.track_log(recorder)

    supervisor.start()

    assert wait_until(lambda: recorder.count("exited with code 0") == 1)
    assert recorder.count("Running") == 1
    assert "hello from child" in recorder.lines


def test_track_log_replaces_previous_subscriber(make_supervisor) -> None:
    first, second = LogRecorder(), LogRecorder()
    supervisor = make_supervisor("print('line')")

    supervisor.track_log(first)
    supervisor.track_log(second)
    supervisor.start()

    assert wait_until(lambda: second.count("exited with code") == 1)
    assert first.lines == []


def test_failing_command_is_retried_three_times(make_supervisor, recorder: LogRecorder) -> None:
    supervisor = make_supervisor(EXIT_FAILURE)
    supervisor.track_log(recorder)

    supervisor.start(restart_when_fails=True)

    assert wait_until(lambda: supervisor.state is SupervisorState.FAILED_PERMANENTLY)
    assert recorder.count("again (attempt: 1/3)") == 1
    assert recorder.count("again (attempt: 3/3)") == 1
    assert recorder.count("again (attempt") == 3
    assert recorder.count("failed too many times (3)") == 1

    time.sleep(0.5)
    assert recorder.count("exited with code 1") == 4
    assert supervisor.retry_count == 3
    assert supervisor.probe().running is False


def test_failing_command_without_restart_stays_stopped(make_supervisor, recorder: LogRecorder) -> None:
    supervisor = make_supervisor(EXIT_FAILURE)
    supervisor.track_log(recorder)

    supervisor.start(restart_when_fails=False)

    assert wait_until(lambda: supervisor.last_exit_code == 1)
    time.sleep(0.3)
    assert recorder.count("again (attempt") == 0
    assert supervisor.state is SupervisorState.STOPPED


def test_launch_failure_is_reported_through_exit(tmp_path, recorder: LogRecorder) -> None:
    definition = CommandDefinition(executable=str(tmp_path / "missing-binary"))
    supervisor = CommandSupervisor("missing", definition, root_dir=tmp_path, max_retries=1)
    supervisor.track_log(recorder)

    supervisor.start()

    assert wait_until(lambda: supervisor.state is SupervisorState.FAILED_PERMANENTLY)
    assert supervisor.last_exit_code == 127
    assert recorder.count("Failed to launch") == 2


def test_stop_suppresses_auto_restart(make_supervisor, recorder: LogRecorder) -> None:
    supervisor = make_supervisor(SLEEP_FOREVER)
    supervisor.track_log(recorder)
    supervisor.start(restart_when_fails=True)
    assert wait_until(lambda: supervisor.probe().running)

    supervisor.stop()

    assert supervisor.pid is None
    assert supervisor.probe().running is False
    assert supervisor.state is SupervisorState.STOPPED
    time.sleep(0.3)
    assert recorder.count("again (attempt") == 0


def test_stop_kills_whole_process_tree(make_supervisor, recorder: LogRecorder) -> None:
    code = (
        "import subprocess, sys, time\n"
        "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
        "print('child', child.pid, flush=True)\n"
        "time.sleep(60)\n"
    )
    supervisor = make_supervisor(code)
    supervisor.track_log(recorder)
    supervisor.start()
    assert wait_until(lambda: any(line.startswith("child ") for line in recorder.lines))
    child_pid = int(next(line for line in recorder.lines if line.startswith("child ")).split()[1])

    supervisor.stop()

    assert wait_until(lambda: process_gone(child_pid))


def test_start_replaces_live_process(make_supervisor) -> None:
    supervisor = make_supervisor(SLEEP_FOREVER)
    supervisor.start()
    assert wait_until(lambda: supervisor.probe().running)
    first_pid = supervisor.pid

    supervisor.start()

    assert wait_until(lambda: supervisor.probe().running)
    assert supervisor.pid != first_pid
    assert not psutil.pid_exists(first_pid) or psutil.Process(first_pid).status() == psutil.STATUS_ZOMBIE


def test_restart_relaunches_successfully_exited_command(make_supervisor, recorder: LogRecorder) -> None:
    supervisor = make_supervisor(EXIT_SUCCESS)
    supervisor.track_log(recorder)
    supervisor.start()
    assert wait_until(lambda: recorder.count("exited with code 0") == 1)

    supervisor.restart()

    assert wait_until(lambda: recorder.count("exited with code 0") == 2)
    assert recorder.lines.count("ok") == 2


def test_restart_of_running_command_only_stops_it(make_supervisor, recorder: LogRecorder) -> None:
    supervisor = make_supervisor(SLEEP_FOREVER)
    supervisor.track_log(recorder)
    supervisor.start()
    assert wait_until(lambda: supervisor.probe().running)

    supervisor.restart()

    assert supervisor.pid is None
    assert supervisor.probe().running is False
    time.sleep(0.5)
    assert supervisor.pid is None
    assert supervisor.state is SupervisorState.STOPPED
    assert recorder.count("again (attempt") == 0


def test_restart_resets_permanent_failure(make_supervisor) -> None:
    supervisor = make_supervisor(EXIT_FAILURE, max_retries=1)
    supervisor.start()
    assert wait_until(lambda: supervisor.state is SupervisorState.FAILED_PERMANENTLY)
    assert supervisor.retry_count == 1

    supervisor.restart()

    assert supervisor.retry_count == 0
    assert wait_until(lambda: supervisor.state is SupervisorState.FAILED_PERMANENTLY)
    assert supervisor.retry_count == 1


def test_probe_never_raises(make_supervisor) -> None:
    class BrokenHandle:
        def is_running(self) -> bool:
            raise OSError("handle is gone")

    supervisor = make_supervisor()
    supervisor._process = BrokenHandle()

    assert supervisor.probe() == ProbeResult(running=False)
    supervisor._process = None


def test_run_script_returns_output(tmp_path) -> None:
    supervisor = CommandSupervisor("echo", CommandDefinition(script="echo scripted"), root_dir=tmp_path)

    assert supervisor.run().strip() == "scripted"


def test_run_failing_script_raises(tmp_path) -> None:
    supervisor = CommandSupervisor("fail", CommandDefinition(script="echo broken; exit 3"), root_dir=tmp_path)

    with pytest.raises(CommandFailedError) as exc_info:
        supervisor.run()

    assert exc_info.value.exit_code == 3
    assert "broken" in exc_info.value.output


def test_run_executable_returns_handle(make_supervisor) -> None:
    handle = make_supervisor("print('one'); print('two')").run()

    assert isinstance(handle, ProcessHandle)
    assert handle.result(timeout=10) == "one\ntwo"


def test_run_executable_failure_raises_from_result(make_supervisor) -> None:
    handle = make_supervisor("import sys; print('bad'); sys.exit(2)").run()

    with pytest.raises(CommandFailedError) as exc_info:
        handle.result(timeout=10)

    assert exc_info.value.exit_code == 2
    assert exc_info.value.command_name == "cmd"


def test_run_with_logs_streams_and_marks_completion(make_supervisor, recorder: LogRecorder) -> None:
    supervisor = make_supervisor("print('first', flush=True); print('second')")

    handle = supervisor.run_with_logs(recorder)

    assert handle.wait(timeout=10)
    assert recorder.lines == ["first", "second", DONE_MARKER]
    assert supervisor.pid is None


def test_run_with_logs_for_script(tmp_path, recorder: LogRecorder) -> None:
    supervisor = CommandSupervisor("echo", CommandDefinition(script="echo viewer"), root_dir=tmp_path)

    assert supervisor.run_with_logs(recorder) is None
    assert recorder.lines[0].strip() == "viewer"
    assert recorder.lines[-1] == DONE_MARKER


def test_command_args_and_pretty_name(tmp_path) -> None:
    npm = CommandSupervisor("web", CommandDefinition(npm_script="dev", args=("--port", "3000"), working_dir="./web"), tmp_path)
    exe = CommandSupervisor("py", CommandDefinition(executable=sys.executable, args=("-V",)), tmp_path)
    labelled = CommandSupervisor("api", CommandDefinition(executable="node", display_name="API server"), tmp_path)

    assert npm.command_args == ["yarn", "dev", "--port", "3000"]
    assert npm.pretty_name == 'yarn dev --port 3000 ("./web")'
    assert npm.cwd == (tmp_path / "web").resolve()
    assert exe.pretty_name == f'{sys.executable} -V ("./")'
    assert labelled.pretty_name == "API server"


def test_supervised_output_is_not_buffered(make_supervisor, recorder: LogRecorder) -> None:
    supervisor = make_supervisor("for i in range(200): print('line', i, flush=True)\nimport time; time.sleep(60)")
    supervisor.track_log(recorder)
    supervisor.start()

    assert wait_until(lambda: "line 199" in recorder.lines)
    assert supervisor._process.output == ""


def test_run_with_logs_does_not_buffer_output(make_supervisor, recorder: LogRecorder) -> None:
    handle = make_supervisor("for i in range(50): print('line', i)").run_with_logs(recorder)

    assert handle.wait(timeout=10)
    assert sum(1 for line in recorder.lines if line.startswith("line ")) == 50
    assert handle.output == ""
