import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from cozy.config import effective_settings as config
from cozy.supervisor import CommandDefinition, ConfigurationError, Workflow

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectConfig:
    """The commands and workflows declared by a project."""
    commands: Dict[str, CommandDefinition] = field(default_factory=dict)
    workflows: Dict[str, Workflow] = field(default_factory=dict)

    def get_workflow(self, name: str) -> Workflow:
        workflow = self.workflows.get(name)
        if workflow is None:
            raise ConfigurationError(f'Workflow "{name}" does not exist!')
        return workflow


def load_project_config(
    root_dir: Union[str, Path],
    file_name: Optional[str] = None,
    key: Optional[str] = None,
) -> ProjectConfig:
    """
    Reads the cozy section of the project manifest (the `cozy` key of `package.json`).

    A missing manifest or section yields an empty configuration.

    :param root_dir: The directory holding the manifest.
    :param file_name: Manifest file name, defaults to `CONFIG_FILE_NAME`.
    :param key: Top-level key of the cozy section, defaults to `CONFIG_KEY`.
    :raises ConfigurationError: If the manifest is unreadable or an entry is invalid.
    """
    manifest_path = Path(root_dir) / (file_name or config.CONFIG_FILE_NAME)
    key = key or config.CONFIG_KEY

    if not manifest_path.exists():
        log.warning(f"No manifest found at '{manifest_path}'.")
        return ProjectConfig()

    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, IOError) as e:
        raise ConfigurationError(f"Failed to load or parse '{manifest_path}': {e}") from e

    section = data.get(key) if isinstance(data, dict) else None
    if not section:
        log.warning(f"'{manifest_path}' has no \"{key}\" section.")
        return ProjectConfig()
    if not isinstance(section, dict):
        raise ConfigurationError(f'The "{key}" section of \'{manifest_path}\' must be an object.')

    commands = {
        name: CommandDefinition.from_mapping(definition, name)
        for name, definition in (section.get("commands") or {}).items()
    }
    workflows = {
        name: Workflow.from_mapping(name, definition)
        for name, definition in (section.get("workflows") or {}).items()
    }
    log.debug(f"Loaded {len(commands)} commands and {len(workflows)} workflows from '{manifest_path}'.")
    return ProjectConfig(commands=commands, workflows=workflows)
