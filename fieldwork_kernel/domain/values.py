"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Rate information, transport details, ad hoc settlements and stage
    history records. Every monetary or quantity field is a ``Decimal``;
    floats and ints handed in by callers are converted through ``str`` on
    construction so arithmetic never runs on binary floats.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValidationError on construction with non-numeric amounts, negative
      rates or quantities, or empty required labels.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from fieldwork_kernel.domain.stages import WorkStage
from fieldwork_kernel.exceptions import ValidationError


# Matches the Numeric(38, 9) columns amounts are stored in.
MONEY_DECIMAL_PLACES = 9
_MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def round_money(value: Decimal) -> Decimal:
    """
    Round half-up to MONEY_DECIMAL_PLACES when ``value`` is finer than that.

    Values already within the stored precision keep their exponent, so
    ``Decimal("3000")`` stays ``3000`` rather than gaining nine zeros.
    """
    if value.as_tuple().exponent >= -MONEY_DECIMAL_PLACES:
        return value
    return value.quantize(_MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str) -> Decimal:
    """
    Coerce ``value`` to Decimal, rejecting anything non-numeric.

    The result is rounded to the stored precision, so what is validated
    here is exactly what comes back from the database.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError(f"Invalid {field}: {value!r}", field=field)
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Invalid {field}: {value!r}", field=field) from e
    if not result.is_finite():
        raise ValidationError(f"Invalid {field}: {value!r}", field=field)
    try:
        return round_money(result)
    except InvalidOperation as e:
        raise ValidationError(f"{field} has too many digits: {value!r}", field=field) from e


def to_optional_decimal(value: Any, field: str) -> Decimal | None:
    return None if value is None else to_decimal(value, field)


def _require_non_negative(value: Decimal | None, field: str) -> None:
    if value is not None and value < 0:
        raise ValidationError(f"{field} must not be negative: {value}", field=field)


@dataclass(frozen=True, slots=True)
class RateEntry:
    """
    Rate entered when a work unit is completed.

    Contract:
        ``negotiated_rate`` overrides ``base_rate`` when present. A missing
        ``quantity`` counts as zero.

    Guarantees:
        - All numeric fields are non-negative Decimals.
    """

    base_rate: Decimal
    quantity: Decimal | None = None
    negotiated_rate: Decimal | None = None
    unit: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_rate", to_decimal(self.base_rate, "base_rate"))
        object.__setattr__(self, "quantity", to_optional_decimal(self.quantity, "quantity"))
        object.__setattr__(
            self, "negotiated_rate", to_optional_decimal(self.negotiated_rate, "negotiated_rate")
        )
        _require_non_negative(self.base_rate, "base_rate")
        _require_non_negative(self.quantity, "quantity")
        _require_non_negative(self.negotiated_rate, "negotiated_rate")

    @property
    def effective_rate(self) -> Decimal:
        return self.negotiated_rate if self.negotiated_rate is not None else self.base_rate


@dataclass(frozen=True, slots=True)
class RateInfo:
    """
    Job-level rate header.

    ``additional_amount`` is a pre-agreed job-level extra recorded on the
    header; it is displayed alongside the settlement but is not one of the
    per-unit amounts or registered additional settlements.
    """

    base_rate: Decimal = Decimal("0")
    unit: str = ""
    quantity: Decimal | None = None
    negotiated_rate: Decimal | None = None
    additional_amount: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_rate", to_decimal(self.base_rate, "base_rate"))
        object.__setattr__(self, "quantity", to_optional_decimal(self.quantity, "quantity"))
        object.__setattr__(
            self, "negotiated_rate", to_optional_decimal(self.negotiated_rate, "negotiated_rate")
        )
        object.__setattr__(
            self,
            "additional_amount",
            to_optional_decimal(self.additional_amount, "additional_amount"),
        )
        _require_non_negative(self.base_rate, "base_rate")
        _require_non_negative(self.quantity, "quantity")
        _require_non_negative(self.negotiated_rate, "negotiated_rate")

    def to_entry(self) -> RateEntry:
        """Rate entry pre-filled from the job header."""
        return RateEntry(
            base_rate=self.base_rate,
            quantity=self.quantity,
            negotiated_rate=self.negotiated_rate,
            unit=self.unit,
        )


@dataclass(frozen=True, slots=True)
class Location:
    """Pickup or drop-off point of a transport job."""

    address: str
    detail: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    contact_name: str | None = None
    contact_phone: str | None = None


@dataclass(frozen=True, slots=True)
class Cargo:
    type: str
    quantity: Decimal
    unit: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_decimal(self.quantity, "cargo.quantity"))


@dataclass(frozen=True, slots=True)
class TransportInfo:
    """
    Transport sub-record of a job.

    Surcharges: ``distance_rate * distance`` when both are present, plus
    ``additional_fee`` when present.
    """

    origin: Location
    destination: Location
    cargo: Cargo
    distance: Decimal | None = None
    distance_rate: Decimal | None = None
    additional_fee: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "distance", to_optional_decimal(self.distance, "distance"))
        object.__setattr__(
            self, "distance_rate", to_optional_decimal(self.distance_rate, "distance_rate")
        )
        object.__setattr__(
            self, "additional_fee", to_optional_decimal(self.additional_fee, "additional_fee")
        )
        _require_non_negative(self.distance, "distance")
        _require_non_negative(self.distance_rate, "distance_rate")


@dataclass(frozen=True, slots=True)
class AdditionalSettlement:
    """An ad hoc extra charge tied to one work unit of a job."""

    category_id: str
    amount: Decimal
    reason: str
    settled_at: datetime
    registered_by: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount, "amount"))


@dataclass(frozen=True, slots=True)
class StageRecord:
    """One entry of a job's append-only stage history."""

    category_id: str
    stage: WorkStage
    timestamp: datetime
    actor: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "category_id": self.category_id,
            "stage": self.stage.value,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
        }
