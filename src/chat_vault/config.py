"""Importer settings.

Settings come from ``<state_dir>/config.json`` when present and are then
overridden by command-line options (which also read ``CHAT_VAULT_*``
environment variables).
"""

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path

from .errors import ConfigError
from .render import DEFAULT_FILENAME_TEMPLATE

STATE_DIRNAME = ".chat-vault"
CONFIG_NAME = "config.json"

_ALLOWED_KEYS = {"notes_folder", "filename_template", "keyword_sample_chars"}


@dataclass
class Settings:
    vault_root: Path
    state_dir: Path
    notes_folder: str = "Chats"
    filename_template: str = DEFAULT_FILENAME_TEMPLATE
    keyword_sample_chars: int = 300

    @property
    def state_path(self) -> Path:
        return self.state_dir / "state.json"

    @property
    def materialized_dir(self) -> Path:
        return self.state_dir / "materialised"

    @property
    def profiles_dir(self) -> Path:
        return self.state_dir / "profiles"

    def with_overrides(self, **overrides) -> "Settings":
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in overrides.items() if k in known and v is not None})


def load_settings(vault_root: Path, state_dir: Path | None = None) -> Settings:
    """Build settings for a vault, reading the optional config file.

    Raises:
        ConfigError: If the config file is unreadable or has unknown keys.
    """
    vault_root = Path(vault_root)
    state_dir = Path(state_dir) if state_dir else vault_root / STATE_DIRNAME
    settings = Settings(vault_root=vault_root, state_dir=state_dir)

    path = state_dir / CONFIG_NAME
    if not path.exists():
        return settings

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError("Invalid configuration file", f"{path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError("Invalid configuration file", f"{path}: expected a JSON object")

    unknown = set(raw) - _ALLOWED_KEYS
    if unknown:
        raise ConfigError("Invalid configuration file", f"Unknown keys in {path}: {', '.join(sorted(unknown))}")

    if "keyword_sample_chars" in raw and not isinstance(raw["keyword_sample_chars"], int):
        raise ConfigError("Invalid configuration file", "keyword_sample_chars must be an integer")

    return settings.with_overrides(**raw)
