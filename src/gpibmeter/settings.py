"""Persistent user settings for the measurement application."""
from __future__ import annotations

import json
import pathlib
from dataclasses import asdict, dataclass, field, fields
from typing import Optional

from loguru import logger

from .policy import DEFAULT_RESOURCE


def settings_default_path() -> pathlib.Path:
    return pathlib.Path.home().joinpath(".gpibmeter", "settings.json")


@dataclass
class AppSettings:
    """User settings stored as JSON.

    Constructed explicitly and handed to whoever needs it; :meth:`load` never
    raises, an unreadable file yields defaults.
    """

    gpib_resource_name: str = DEFAULT_RESOURCE
    path: pathlib.Path = field(default_factory=settings_default_path, repr=False, compare=False)

    @classmethod
    def load(cls, path: Optional[pathlib.Path] = None) -> "AppSettings":
        path = pathlib.Path(path) if path is not None else settings_default_path()
        settings = cls(path=path)
        if not path.exists():
            return settings
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Error loading settings from {}: {}", path, exc)
            return settings
        if not isinstance(data, dict):
            logger.warning("Ignoring settings file {}: expected a JSON object", path)
            return settings
        for name in _persisted_fields():
            value = data.get(name)
            if isinstance(value, str) and value.strip():
                setattr(settings, name, value.strip())
        return settings

    def save(self) -> None:
        """Write the settings file, creating its directory if needed."""
        payload = {name: value for name, value in asdict(self).items() if name in _persisted_fields()}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info("Settings saved to {}", self.path)


def _persisted_fields() -> tuple[str, ...]:
    return tuple(f.name for f in fields(AppSettings) if f.name != "path")
