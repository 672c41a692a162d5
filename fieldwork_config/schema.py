"""
Settings schema (``fieldwork_config.schema``).

Responsibility
--------------
Frozen dataclasses describing one loaded settings file.  These are plain
values: the kernel never sees them directly, the bridges translate them
into constructor arguments.

Invariants enforced
-------------------
* Every class is ``frozen=True``; settings cannot change after loading.
* Collections are tuples.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class SeedRateDef:
    """A priced work item to create under a seeded category."""

    name: str
    default_price: Decimal
    unit: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class SeedCategoryDef:
    """One step of the bootstrap pipeline."""

    name: str
    description: str | None = None
    rates: tuple[SeedRateDef, ...] = ()


@dataclass(frozen=True)
class EngineSettings:
    """
    Settings consumed by the process engine and its services.

    ``seed_pipeline`` lists the categories that ``build_seed_graph``
    creates and links, in chain order.
    """

    settings_id: str
    version: int
    default_actor: str = "system"
    default_unit: str = ""
    transport_category_names: tuple[str, ...] = ()
    seed_pipeline: tuple[SeedCategoryDef, ...] = ()
    log_level: str = "INFO"
    database_url: str = "sqlite://"
    checksum: str = field(default="", compare=False)
