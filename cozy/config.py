import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Mapping

import cozy.settings as default_settings

log = logging.getLogger(__name__)

ENV_PREFIX = "COZY_"


class MergedSettings:
    """
    A singleton class that merges default settings with environment overrides.

    This class provides a unified, attribute-based access point for all
    configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from `.env` file (handled by `python-dotenv` in settings.py).
    3. `COZY_<NAME>` environment variables for settings in `MODIFIABLE_SETTINGS`.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """Initializes the settings object by loading defaults and overrides."""
        self._load_defaults()
        self._load_overrides(os.environ if environ is None else environ)

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings.py module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, getattr(default_settings, key))

    def _load_overrides(self, environ: Mapping[str, str]) -> None:
        """
        Applies `COZY_<NAME>` environment overrides.

        Only keys listed in `MODIFIABLE_SETTINGS` are honoured; the raw string is
        coerced to the type of the default value.
        """
        for key in self.MODIFIABLE_SETTINGS:
            raw = environ.get(f"{ENV_PREFIX}{key}")
            if raw is None:
                continue
            try:
                setattr(self, key, coerce_value(getattr(self, key), raw))
                log.debug(f"Overridden setting: {key} = {raw}")
            except (ValueError, TypeError) as e:
                log.warning(f"Could not convert value '{raw}' for setting '{key}'. Ignoring. Error: {e}")

    def as_dict(self) -> Dict[str, Any]:
        """Returns every uppercase setting as a plain dictionary."""
        return {key: getattr(self, key) for key in dir(self) if key.isupper()}


def coerce_value(original_value: Any, value: str) -> Any:
    """Coerces a raw string to the type of the value it replaces."""
    if isinstance(original_value, bool):
        return value.lower() in ('true', '1', 't', 'yes', 'y')
    if isinstance(original_value, Path):
        return Path(value)
    if original_value is not None:
        return type(original_value)(value)
    return value


# Create a singleton instance to be imported by other modules
effective_settings = MergedSettings()
