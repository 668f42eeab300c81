from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Tuple

from .errors import ConfigurationError

LogHandler = Callable[[str], None]


class SupervisorState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED_PERMANENTLY = "failed"


@dataclass(frozen=True)
class ProbeResult:
    running: bool


@dataclass(frozen=True)
class CommandDefinition:
    """
    Static description of one runnable command.

    Exactly one of `npm_script`, `executable` or `script` must be set.
    `args` are appended to the npm script or the executable; they are ignored
    for shell scripts.
    """
    working_dir: str = "./"
    npm_script: Optional[str] = None
    executable: Optional[str] = None
    script: Optional[str] = None
    args: Tuple[str, ...] = field(default_factory=tuple)
    display_name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))
        targets = [t for t in (self.npm_script, self.executable, self.script) if t]
        if not targets:
            raise ConfigurationError("Command doesn't have an executable defined!")
        if len(targets) > 1:
            raise ConfigurationError(
                "Command must define exactly one of 'npm', 'exec' or 'script'."
            )

    @property
    def is_script(self) -> bool:
        return bool(self.script)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], name: str = "") -> "CommandDefinition":
        """Builds a definition from the manifest shape `{dir?, npm?, exec?, script?, args?, name?}`."""
        if not isinstance(data, Mapping):
            raise ConfigurationError(f'Command "{name}" must be an object.')
        args = data.get("args") or []
        if isinstance(args, str) or not isinstance(args, (list, tuple)):
            raise ConfigurationError(f'Command "{name}" has invalid "args"; expected a list.')
        try:
            return cls(
                working_dir=data.get("dir") or "./",
                npm_script=data.get("npm"),
                executable=data.get("exec"),
                script=data.get("script"),
                args=tuple(args),
                display_name=data.get("name"),
            )
        except ConfigurationError as e:
            raise ConfigurationError(f'Command "{name}": {e}') from e


@dataclass(frozen=True)
class Workflow:
    name: str
    commands: Tuple[str, ...]
    parallel: bool = False

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "Workflow":
        """Builds a workflow from the manifest shape `{commands, parallel?}`."""
        if not isinstance(data, Mapping):
            raise ConfigurationError(f'Workflow "{name}" must be an object.')
        commands = data.get("commands")
        if isinstance(commands, str) or not isinstance(commands, (list, tuple)):
            raise ConfigurationError(f'Workflow "{name}" must list its "commands".')
        return cls(name=name, commands=tuple(commands), parallel=bool(data.get("parallel", False)))
