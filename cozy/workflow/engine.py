import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from cozy.supervisor import (
    CommandDefinition, CommandSupervisor, ConfigurationError, CozyError, ProcessHandle, Workflow, WorkflowError,
)

log = logging.getLogger(__name__)

Supervisors = Mapping[str, CommandSupervisor]


def build_supervisors(
    commands: Mapping[str, CommandDefinition],
    root_dir: Union[str, Path] = ".",
    max_retries: Optional[int] = None,
) -> Dict[str, CommandSupervisor]:
    """Creates one supervisor per command definition, keyed by command name."""
    return {
        name: CommandSupervisor(name, definition, root_dir=root_dir, max_retries=max_retries)
        for name, definition in commands.items()
    }


def resolve_command(supervisors: Supervisors, name: str) -> CommandSupervisor:
    """
    Looks up the supervisor of a command.

    :raises ConfigurationError: If no command with that name is defined.
    """
    supervisor = supervisors.get(name)
    if supervisor is None:
        raise ConfigurationError(f'Unable to find command named "{name}"!')
    return supervisor


def resolve_workflow(workflow: Workflow, supervisors: Supervisors) -> List[CommandSupervisor]:
    """Resolves every command of a workflow, in order, before anything is started."""
    return [resolve_command(supervisors, name) for name in workflow.commands]


def _await_handle(handle: ProcessHandle) -> str:
    """Waits for a one-shot command; its process tree is killed if the wait is interrupted."""
    try:
        return handle.result()
    except (KeyboardInterrupt, SystemExit):
        log.warning(f"Interrupted while waiting for '{handle.name}'. Killing it...")
        handle.kill()
        raise


def run_sequence(workflow: Workflow, supervisors: Supervisors) -> None:
    """
    Runs the commands of a workflow one after another, each to completion.

    The first failing command aborts the workflow; later commands never start.

    :raises ConfigurationError: If a command name does not resolve.
    :raises WorkflowError: If a command fails.
    """
    resolved = resolve_workflow(workflow, supervisors)
    total = len(resolved)

    for index, supervisor in enumerate(resolved, start=1):
        log.info(f"[{index}/{total}] {supervisor.name} ({supervisor.pretty_name})")
        try:
            outcome = supervisor.run()
            if not isinstance(outcome, str):
                outcome = _await_handle(outcome)
        except CozyError as e:
            log.error(f"[{index}/{total}] {supervisor.name} failed.")
            raise WorkflowError(supervisor.name, e) from e

        if outcome.strip():
            log.debug(f"Output of '{supervisor.name}':\n{outcome.rstrip()}")

    log.info(f'Workflow "{workflow.name}" completed successfully.')
