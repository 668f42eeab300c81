"""Exceptions raised by command supervisors and workflows."""

from typing import Optional


class CozyError(Exception):
    """Base class for every error raised by cozy."""


class ConfigurationError(CozyError):
    """A command or workflow definition is invalid or references an unknown name."""


class CommandFailedError(CozyError):
    """A one-shot command exited with a non-zero code or could not be launched."""

    def __init__(self, command_name: str, exit_code: Optional[int], output: str = "") -> None:
        self.command_name = command_name
        self.exit_code = exit_code
        self.output = output
        message = f'Command "{command_name}" failed with exit code {exit_code}.'
        if output.strip():
            message += f"\n{output.strip()}"
        super().__init__(message)


class WorkflowError(CozyError):
    """A sequential workflow was aborted by one of its commands."""

    def __init__(self, command_name: str, cause: BaseException) -> None:
        self.command_name = command_name
        self.cause = cause
        super().__init__(f'Workflow aborted at command "{command_name}": {cause}')
