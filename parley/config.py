"""Runtime configuration.

Settings come from an optional YAML file and are then overridden by
``PARLEY_*`` environment variables.  Every field has a usable default so a
bare ``Settings()`` works for local development and tests.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

_ENV_PREFIX = "PARLEY_"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    """Configuration for the messaging core and its collaborators."""

    data_dir: str = str(Path.home() / ".parley")
    max_message_length: int = 5000
    default_page_size: int = 50
    max_page_size: int = 100

    # Moderation
    moderation_timeout: float = 3.0
    moderation_url: str = ""
    moderation_api_key: str = ""
    moderation_model: str = "omni-moderation-latest"
    llm_moderation: bool = False
    anthropic_api_key: str = ""

    # Notifications
    notify_webhook_url: str = ""
    notify_timeout: float = 5.0

    log_level: str = "INFO"

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Settings":
        """Build settings from *path* (or ``$PARLEY_CONFIG``) plus env overrides."""
        if path is None:
            path = os.environ.get(f"{_ENV_PREFIX}CONFIG") or None

        values: dict[str, Any] = {}
        if path is not None:
            values.update(_read_yaml(Path(path)))
        values.update(_read_env())

        known = {f.name: f for f in fields(cls)}
        kwargs = {}
        for key, raw in values.items():
            f = known.get(key)
            if f is None:
                continue
            kwargs[key] = _coerce(raw, type(getattr(cls, key)))
        return cls(**kwargs)

    @property
    def messaging_dir(self) -> Path:
        return Path(self.data_dir) / "messaging"

    @property
    def directory_dir(self) -> Path:
        return Path(self.data_dir) / "directory"

    @property
    def audit_dir(self) -> Path:
        return Path(self.data_dir) / "audit"


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    # Accept an optional top-level ``parley:`` section.
    if isinstance(data.get("parley"), dict):
        data = data["parley"]
    return data


def _read_env() -> dict[str, str]:
    values = {}
    for f in fields(Settings):
        raw = os.environ.get(_ENV_PREFIX + f.name.upper())
        if raw is not None:
            values[f.name] = raw
    if "anthropic_api_key" not in values and os.environ.get("ANTHROPIC_API_KEY"):
        values["anthropic_api_key"] = os.environ["ANTHROPIC_API_KEY"]
    return values


def _coerce(raw: Any, target: type) -> Any:
    if target is bool:
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in {"1", "true", "yes", "on"}
    if target is int:
        return int(raw)
    if target is float:
        return float(raw)
    return str(raw)


def configure_logging(level: Optional[str] = None) -> None:
    """Install a single stream handler on the root logger."""
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format=_LOG_FORMAT,
    )
