import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import runpod_boss.settings as default_settings
from runpod_boss.local.errors import ConfigurationError

log = logging.getLogger(__name__)


class MergedSettings:
    """
    Merges default settings with JSON overrides into one configuration object.

    An instance is built once at startup and handed explicitly to the planner,
    linker and supervisor. Precedence:
    1. Base values from `settings.py` (which already honours `.env`/environment).
    2. Overrides from `overrides.json` for settings in `MODIFIABLE_SETTINGS`.
    3. Keyword overrides given to `load_settings` or `with_overrides`.
    """

    def __init__(self, overrides_path: Optional[Path] = None, workspace: Optional[Path] = None) -> None:
        self._load_defaults()
        if workspace is not None:
            self.rebase_workspace(Path(workspace))
        if overrides_path is not None:
            self.OVERRIDES_JSON_PATH = Path(overrides_path)
        self._load_overrides()

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings.py module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, copy.deepcopy(getattr(default_settings, key)))

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the `overrides.json` file.

        Only keys listed in `MODIFIABLE_SETTINGS` are applied.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        log.info(f"Loading configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue
            setattr(self, key, value)
            log.debug(f"Overridden setting: {key} = {value}")

    def rebase_workspace(self, workspace: Path) -> None:
        """
        Moves every path that lives under the current workspace to `workspace`.

        :param workspace: The new workspace root.
        """
        old_root = Path(self.WORKSPACE_DIR)
        new_root = Path(workspace)
        for key in [k for k in vars(self) if k.isupper()]:
            value = getattr(self, key)
            if isinstance(value, Path):
                try:
                    relative = value.relative_to(old_root)
                except ValueError:
                    continue
                setattr(self, key, new_root / relative)
        self.WORKSPACE_DIR = new_root

    def with_overrides(self, **overrides: Any) -> "MergedSettings":
        """
        Returns a validated copy with the given settings replaced.

        A `WORKSPACE_DIR` override rebases all workspace-relative paths first.
        """
        clone = copy.copy(self)
        workspace = overrides.pop("WORKSPACE_DIR", None)
        if workspace is not None:
            clone.rebase_workspace(Path(workspace))
        for key, value in overrides.items():
            if not hasattr(clone, key):
                raise ConfigurationError(f"Unknown setting '{key}'")
            original_value = getattr(clone, key)
            if isinstance(original_value, Path) and not isinstance(value, Path):
                value = Path(value)
            setattr(clone, key, value)
        clone.validate()
        return clone

    def validate(self) -> None:
        """Raises ConfigurationError if a setting has an unsupported value."""
        if self.APP_PROFILE not in self.APP_PROFILES:
            raise ConfigurationError(f"APP_PROFILE must be one of {self.APP_PROFILES}, got '{self.APP_PROFILE}'")
        if self.GPU_PROFILE not in self.GPU_PROFILES:
            raise ConfigurationError(f"GPU_PROFILE must be one of {self.GPU_PROFILES}, got '{self.GPU_PROFILE}'")
        if self.LINK_CONFLICT_POLICY not in self.LINK_CONFLICT_POLICIES:
            raise ConfigurationError(
                f"LINK_CONFLICT_POLICY must be one of {self.LINK_CONFLICT_POLICIES}, got '{self.LINK_CONFLICT_POLICY}'"
            )
        for key in ("GRACEFUL_SHUTDOWN_TIMEOUT", "SUPERVISOR_POLL_INTERVAL", "WARMUP_DELAY_SECONDS"):
            value = getattr(self, key)
            if not isinstance(value, (int, float)) or value < 0:
                raise ConfigurationError(f"{key} must be a non-negative number, got '{value}'")

    @property
    def gpu_build(self) -> Dict[str, Any]:
        return self.GPU_BUILDS[self.GPU_PROFILE]

    @property
    def manages_a1111(self) -> bool:
        return self.APP_PROFILE in ("combined", "a1111")

    @property
    def manages_comfyui(self) -> bool:
        return self.APP_PROFILE in ("combined", "comfyui")


def load_settings(overrides_path: Optional[Path] = None, **overrides: Any) -> MergedSettings:
    """
    Builds the configuration object for one run.

    :param overrides_path: Alternative location of overrides.json.
    :param overrides: Settings to replace after file overrides are applied.
    :return: A validated MergedSettings instance.
    """
    workspace = overrides.pop("WORKSPACE_DIR", None)
    settings = MergedSettings(overrides_path, workspace)
    if overrides:
        return settings.with_overrides(**overrides)
    settings.validate()
    return settings
