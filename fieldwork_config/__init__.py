"""
fieldwork_config -- single public entrypoint for engine settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  No other component reads settings files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``fieldwork_kernel``.  The kernel MUST
    NEVER import from ``fieldwork_config``; ``fieldwork_config.bridges``
    translates settings into kernel constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``KeyError`` -- a required key is missing.
    - ``ValueError`` -- a value has the wrong type or an unknown value.

Audit relevance:
    Every successful call emits a ``fieldwork_settings_loaded`` log entry
    with the settings id, version and checksum, tying the behaviour of a
    running process to the exact settings file it used.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fieldwork_config.loader import load_settings
from fieldwork_config.schema import EngineSettings

_logger = logging.getLogger("fieldwork_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_settings(config_path: Path | str | None = None) -> EngineSettings:
    """
    The ONLY public settings entrypoint.

    Args:
        config_path: Settings file to load.  Defaults to
            ``fieldwork_config/sets/default.yaml``.

    Raises:
        FileNotFoundError, KeyError, ValueError (see module docstring).
    """
    path = Path(config_path) if config_path is not None else DEFAULT_SETTINGS_PATH
    settings = load_settings(path)
    _logger.info(
        "fieldwork_settings_loaded",
        extra={
            "settings_id": settings.settings_id,
            "settings_version": settings.version,
            "checksum": settings.checksum,
            "seed_categories": len(settings.seed_pipeline),
        },
    )
    return settings


__all__ = ["DEFAULT_SETTINGS_PATH", "EngineSettings", "get_active_settings"]
