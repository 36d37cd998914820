"""Layered TOML configuration files.

``config/default.toml`` is always read; ``config/{LIAISON_ENV}.toml`` is
merged on top when present. Environment variables are applied later by
``Settings`` itself.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

CONFIG_DIR_VAR = "LIAISON_CONFIG_DIR"
ENV_VAR = "LIAISON_ENV"
DEFAULT_ENV = "development"


def get_config_dir() -> Path:
    """Directory holding the TOML files.

    ``LIAISON_CONFIG_DIR`` wins; otherwise the nearest ``config/`` found
    walking up from the working directory.
    """
    explicit = os.environ.get(CONFIG_DIR_VAR)
    if explicit:
        path = Path(explicit)
        if not path.is_dir():
            raise FileNotFoundError(f"Config directory not found: {explicit}")
        return path

    cwd = Path.cwd()
    for candidate in (cwd, *cwd.parents):
        if (candidate / "config").is_dir():
            return candidate / "config"
    return Path("config")


def get_environment() -> str:
    return os.environ.get(ENV_VAR, DEFAULT_ENV)


def load_toml(file_path: Path) -> dict[str, Any]:
    with file_path.open("rb") as f:
        return tomllib.load(f)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated by ``override``, merging nested tables."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_dir: Path | None = None, env: str | None = None
) -> dict[str, Any]:
    """Read the default file and the environment overlay.

    Raises:
        FileNotFoundError: ``default.toml`` is missing
    """
    config_dir = config_dir or get_config_dir()
    default_path = config_dir / "default.toml"
    if not default_path.is_file():
        raise FileNotFoundError(
            f"{default_path} is required; set {CONFIG_DIR_VAR} to point elsewhere"
        )

    overlay = config_dir / f"{env or get_environment()}.toml"
    config = load_toml(default_path)
    if overlay.is_file():
        config = deep_merge(config, load_toml(overlay))
    return config
