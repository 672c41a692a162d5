"""
Settings Loader (``fieldwork_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into ``EngineSettings``.  Runtime
callers go through ``fieldwork_config.get_active_settings()``; the
functions here are exposed for tests and tooling.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields (``settings_id``,
  ``version``).
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  document for identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError``.
* Wrong types or unknown log level  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fieldwork_config.schema import (
    LOG_LEVELS,
    EngineSettings,
    SeedCategoryDef,
    SeedRateDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _require_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value


def _parse_price(value: Any, key: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    try:
        price = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{key} must be a number, got {value!r}") from e
    if price < 0:
        raise ValueError(f"{key} must not be negative, got {value!r}")
    return price


def parse_seed_rate(data: dict[str, Any]) -> SeedRateDef:
    unit = data.get("unit")
    return SeedRateDef(
        name=_require_str(data["name"], "rates.name"),
        default_price=_parse_price(data["default_price"], "rates.default_price"),
        unit=_require_str(unit, "rates.unit") if unit is not None else None,
        description=data.get("description"),
    )


def parse_seed_category(data: Any) -> SeedCategoryDef:
    """A pipeline entry is either a bare name or a mapping with rates."""
    if isinstance(data, str):
        return SeedCategoryDef(name=data)
    if not isinstance(data, dict):
        raise ValueError(f"seed_pipeline entries must be names or mappings, got {data!r}")
    rates = data.get("rates") or []
    if not isinstance(rates, list):
        raise ValueError(f"seed_pipeline.rates must be a list, got {rates!r}")
    return SeedCategoryDef(
        name=_require_str(data["name"], "seed_pipeline.name"),
        description=data.get("description"),
        rates=tuple(parse_seed_rate(r) for r in rates),
    )


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse ``EngineSettings`` from a loaded YAML document.

    Raises:
        KeyError: ``settings_id`` or ``version`` missing.
        ValueError: a field has the wrong type or an unknown value.
    """
    version = data["version"]
    if isinstance(version, bool) or not isinstance(version, int):
        raise ValueError(f"version must be an integer, got {version!r}")

    transport_names = data.get("transport_category_names", [])
    if not isinstance(transport_names, list):
        raise ValueError(f"transport_category_names must be a list, got {transport_names!r}")

    pipeline = data.get("seed_pipeline", [])
    if not isinstance(pipeline, list):
        raise ValueError(f"seed_pipeline must be a list, got {pipeline!r}")

    log_level = _require_str(data.get("log_level", "INFO"), "log_level").upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    default_actor = _require_str(data.get("default_actor", "system"), "default_actor")
    if not default_actor.strip():
        raise ValueError("default_actor must not be empty")

    return EngineSettings(
        settings_id=_require_str(data["settings_id"], "settings_id"),
        version=version,
        default_actor=default_actor,
        default_unit=_require_str(data.get("default_unit", ""), "default_unit"),
        transport_category_names=tuple(
            _require_str(n, "transport_category_names") for n in transport_names
        ),
        seed_pipeline=tuple(parse_seed_category(entry) for entry in pipeline),
        log_level=log_level,
        database_url=_require_str(data.get("database_url", "sqlite://"), "database_url"),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> EngineSettings:
    return parse_settings(load_yaml_file(path))
