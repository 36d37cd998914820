"""Shared test fixtures for the Liaison test suite."""

import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

# Load config/test.toml on top of config/default.toml
os.environ.setdefault("LIAISON_ENV", "test")


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory for testing."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def mock_toml_files(test_config_dir: Path) -> Callable[[dict[str, str]], None]:
    """Factory fixture to create TOML files in the test config directory.

    Usage:
        def test_something(mock_toml_files):
            mock_toml_files({
                "default.toml": "app_name = 'test'",
                "test.toml": "debug = true",
            })
    """

    def _create_toml_files(files: dict[str, str]) -> None:
        for filename, content in files.items():
            (test_config_dir / filename).write_text(content)

    return _create_toml_files


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Clear the settings cache before and after each test.

    This ensures test isolation for configuration tests.
    """
    from liaison.config import get_settings
    from liaison.config.settings import set_toml_config

    get_settings.cache_clear()
    set_toml_config({})
    yield
    get_settings.cache_clear()
    set_toml_config({})


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Reset structlog after each test.

    setup_logging binds the current sys.stderr, which pytest's capture closes
    once the test ends; later tests must not log into that stale stream.
    """
    import structlog

    yield
    structlog.reset_defaults()
