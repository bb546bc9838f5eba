"""Screenshots JSON file discovery and loading."""

import json
import logging
from pathlib import Path
from typing import Any

from errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = (
    "./screenshots-dev.json",
    "./screenshots.json",
    "/data/screenshots.json",
)


def find_config_path(configured: str = "", candidates=DEFAULT_CONFIG_PATHS) -> Path:
    """Return the configured path, or the first default location that exists."""
    if configured:
        return Path(configured)
    for candidate in candidates:
        if Path(candidate).exists():
            return Path(candidate)
    raise ConfigurationError(
        "No screenshots configuration file found. Please create one of: "
        + ", ".join(candidates)
    )


def load_screenshot_config(path: Path) -> dict[str, Any]:
    """
    Read the raw ``{"screenshots": [...], "off_hours": {...}}`` document.

    Only the document shape is checked here; the scheduler validates jobs.
    """
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        config = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e

    if not isinstance(config, dict) or not isinstance(config.get("screenshots"), list):
        raise ConfigurationError('Configuration must contain a "screenshots" array property')

    logger.info("Loaded configuration with %d screenshot(s) from %s", len(config["screenshots"]), path)
    return config
