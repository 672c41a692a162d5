"""
Module: fieldwork_kernel.db.types
Responsibility: Column type aliases and type decorators shared by every
    model, so that money, names and timestamps are stored identically across
    the schema.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/
    or domain/.

Invariants enforced:
    - No floats for money.  Every monetary column uses Money (Numeric(38, 9))
      and is read back as Decimal.
    - Timestamps are always timezone-aware on the Python side.  Backends that
      drop the offset (SQLite) get UTC re-attached on load.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

# Settlement amounts, rates, quantities
Money = Annotated[Decimal, Numeric(38, 9)]

# Entity identifiers (uuid4 strings)
Identifier = Annotated[str, String(36)]

# Display names of categories, workers, farmers, fields
Name = Annotated[str, String(255)]

# Stage and enum labels
ShortCode = Annotated[str, String(50)]

# Free text (memos, descriptions, settlement reasons)
LongText = Annotated[str, String(4000)]


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp column.

    Contract:
        Values are stored in UTC; naive values are assumed to be UTC already.
        Values read back without an offset get ``timezone.utc`` attached.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime to UTC, attaching UTC to naive values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
