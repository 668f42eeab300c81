"""
The Workflow package.
Drives the commands of a workflow, either one after another or concurrently.
"""
from .engine import build_supervisors, resolve_command, resolve_workflow, run_sequence
from .session import Dashboard, ParallelSession, run_parallel

__all__ = [
    'build_supervisors', 'resolve_command', 'resolve_workflow', 'run_sequence',
    'Dashboard', 'ParallelSession', 'run_parallel',
]
