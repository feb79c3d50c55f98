"""User configuration for diskpulse.

Settings live in ``~/.diskpulse/config.json``; set ``DISKPULSE_CONFIG`` to
point somewhere else. They are read per request and never cached.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

log = logging.getLogger(__name__)

CONFIG_ENV = "DISKPULSE_CONFIG"


def expand_path(path: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expanduser(os.path.expandvars(path)))


def config_file() -> Path:
    """Location of the config file."""
    override = os.environ.get(CONFIG_ENV)
    if override:
        return expand_path(override)
    return expand_path("~/.diskpulse/config.json")


class Settings(BaseModel):
    """User-editable engine settings."""

    protected_paths: list[str] = Field(
        default_factory=list,
        description="Paths that are never planned or deleted (children included)",
    )
    max_workers: Optional[int] = Field(
        None,
        ge=1,
        description="Worker pool size for parallel scans; default scales with CPU count",
    )
    log_level: str = Field("WARNING", description="Logging level for the CLI")

    def worker_count(self) -> int:
        """Worker pool size: a small multiple of available cores."""
        if self.max_workers:
            return self.max_workers
        return min(32, (os.cpu_count() or 1) * 2)

    def is_protected(self, path: str) -> bool:
        """Whether path is a protected path or inside one."""
        expanded = str(expand_path(path))
        for protected in self.protected_paths:
            protected_expanded = str(expand_path(protected)).rstrip("/")
            if expanded == protected_expanded or expanded.startswith(protected_expanded + "/"):
                return True
        return False


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings, falling back to defaults when missing or invalid."""
    path = path or config_file()
    if not path.exists():
        return Settings()

    try:
        with open(path) as f:
            return Settings.model_validate(json.load(f))
    except (json.JSONDecodeError, OSError, ValidationError) as e:
        log.warning("Could not load settings from %s: %s", path, e)
        return Settings()


def save_settings(settings: Settings, path: Optional[Path] = None) -> bool:
    """Persist settings; returns False if the file could not be written."""
    path = path or config_file()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(settings.model_dump_json(indent=2) + "\n")
        return True
    except OSError as e:
        log.warning("Could not save settings to %s: %s", path, e)
        return False


def add_protection(path: str, config_path: Optional[Path] = None) -> Settings:
    """
    Add a path to the protection list.

    Raises:
        FileNotFoundError: if the path does not exist
        OSError: if the settings file could not be written
    """
    expanded = str(expand_path(path).absolute())
    if not Path(expanded).exists():
        raise FileNotFoundError(f"Path does not exist: {path}")

    settings = load_settings(config_path)
    if expanded not in settings.protected_paths:
        settings.protected_paths.append(expanded)
        if not save_settings(settings, config_path):
            raise OSError(f"Failed to save config: {config_path or config_file()}")
    return settings


def remove_protection(path: str, config_path: Optional[Path] = None) -> Settings:
    """
    Remove a path from the protection list.

    Raises:
        OSError: if the settings file could not be written
    """
    expanded = str(expand_path(path).absolute())
    settings = load_settings(config_path)
    if expanded in settings.protected_paths:
        settings.protected_paths.remove(expanded)
        if not save_settings(settings, config_path):
            raise OSError(f"Failed to save config: {config_path or config_file()}")
    return settings
