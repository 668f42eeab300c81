"""Test configuration and fixtures."""

import sys
import time
import threading
from typing import Callable, List

import psutil
import pytest

from cozy.supervisor import CommandDefinition, CommandSupervisor


def python_command(code: str, **kwargs) -> CommandDefinition:
    """A command definition running a Python snippet with the current interpreter."""
    return CommandDefinition(executable=sys.executable, args=("-c", code), **kwargs)


def wait_until(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.05) -> bool:
    """Polls `predicate` until it is true or `timeout` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class LogRecorder:
    """Thread-safe log subscriber collecting every line it receives."""

    def __init__(self) -> None:
        self.lines: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, line: str) -> None:
        with self._lock:
            self.lines.append(line)

    def count(self, fragment: str) -> int:
        with self._lock:
            return sum(1 for line in self.lines if fragment in line)


SLEEP_FOREVER = "import time; time.sleep(60)"
EXIT_FAILURE = "import sys; sys.exit(1)"
EXIT_SUCCESS = "print('ok')"


def process_gone(pid: int) -> bool:
    """True once `pid` has exited; a zombie waiting to be reaped counts as gone."""
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


@pytest.fixture
def recorder() -> LogRecorder:
    """Provide a fresh log subscriber."""
    return LogRecorder()


@pytest.fixture
def make_supervisor(tmp_path):
    """Provide a factory for supervisors that are all stopped after the test."""
    created: List[CommandSupervisor] = []

    def _make(code: str = SLEEP_FOREVER, name: str = "cmd", **kwargs) -> CommandSupervisor:
        supervisor = CommandSupervisor(name, python_command(code), root_dir=tmp_path, **kwargs)
        created.append(supervisor)
        return supervisor

    yield _make

    for supervisor in created:
        supervisor.stop()
