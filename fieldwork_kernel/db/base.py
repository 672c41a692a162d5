"""
Module: fieldwork_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the string primary key convention, the type annotation map for
    consistent column types, and the TrackedBase mixin for row timestamps.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the persistence adapter.  ALL model files import from here.  This
    module MUST NOT import from models/, services/ or domain/.

Invariants enforced:
    - String primary keys: ids are uuid4 strings, the same identifiers the
      domain objects carry, so a row and its aggregate share one id.
    - Decimal precision: Decimal maps to Numeric(38, 9).  NEVER use float for
      settlement amounts.
    - Timestamps are timezone-aware (UTCDateTime).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import uuid4

from sqlalchemy import Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from fieldwork_kernel.db.types import UTCDateTime


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a String(36) primary key, generated with uuid4 when the
          caller does not supply one.
        - Decimal maps to Numeric(38, 9).
        - datetime maps to UTCDateTime (always timezone-aware).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        str: String(255),
    }

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=new_id,
    )


class TrackedBase(Base):
    """
    Abstract base with row timestamps.

    Guarantees:
        - created_at is set by the server on INSERT.
        - updated_at is set on INSERT and refreshed on every UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
