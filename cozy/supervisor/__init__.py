"""
The Supervisor package.
Manages the lifecycle of the external commands cozy runs.

This package contains the CommandSupervisor class, the data model describing
commands and workflows, the error taxonomy, and the OS process helpers used to
spawn, stream, and kill command process trees.
"""
from .errors import CozyError, ConfigurationError, CommandFailedError, WorkflowError
from .process_utils import ProcessHandle
from .supervisor import CommandSupervisor, DONE_MARKER
from .types import CommandDefinition, LogHandler, ProbeResult, SupervisorState, Workflow

__all__ = [
    'CommandSupervisor', 'CommandDefinition', 'Workflow', 'ProbeResult', 'SupervisorState',
    'LogHandler', 'ProcessHandle', 'DONE_MARKER',
    'CozyError', 'ConfigurationError', 'CommandFailedError', 'WorkflowError',
]
