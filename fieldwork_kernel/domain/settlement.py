"""
Settlement -- amount computation for field work.

Responsibility:
    The one authoritative formula for what a job owes:

        base_amount      = (negotiated_rate ?? base_rate) * quantity
        transport extra  = distance_rate * distance   (both present)
                         + additional_fee             (present)
        unit amount      = base_amount (+ transport extra for transport units)
        job total        = sum(unit amounts) + sum(additional settlements)

Architecture position:
    Kernel > Domain -- pure functions over value objects, zero I/O.

Invariants enforced:
    AMOUNT_CONSERVATION -- totals are always recomputed from the live
    collections passed in; nothing here caches a result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Protocol

from fieldwork_kernel.domain.stages import WorkType
from fieldwork_kernel.domain.values import (
    AdditionalSettlement,
    RateEntry,
    TransportInfo,
    round_money,
)

ZERO = Decimal("0")


class _HasAmount(Protocol):
    category_id: str
    amount: Decimal | None


def base_amount(rate: RateEntry) -> Decimal:
    """(negotiated_rate ?? base_rate) * quantity; a missing quantity counts as 0."""
    quantity = rate.quantity if rate.quantity is not None else ZERO
    return rate.effective_rate * quantity


def transport_surcharge(transport: TransportInfo | None) -> Decimal:
    if transport is None:
        return ZERO
    surcharge = ZERO
    if transport.distance_rate is not None and transport.distance is not None:
        surcharge += transport.distance_rate * transport.distance
    if transport.additional_fee is not None:
        surcharge += transport.additional_fee
    return surcharge


def is_transport_unit(
    work_type: WorkType | None,
    category_name: str,
    transport_category_names: Iterable[str] = (),
) -> bool:
    """A unit is billed as transport when the job is a transport job or its
    category is one of the configured transport categories."""
    if work_type is WorkType.TRANSPORT:
        return True
    return category_name in set(transport_category_names)


def unit_amount(
    rate: RateEntry,
    transport: TransportInfo | None = None,
    is_transport: bool = False,
) -> Decimal:
    amount = base_amount(rate)
    if is_transport:
        amount += transport_surcharge(transport)
    return round_money(amount)


def category_total(units: Iterable[_HasAmount]) -> Decimal:
    return sum((u.amount for u in units if u.amount is not None), ZERO)


def additional_total(settlements: Iterable[AdditionalSettlement]) -> Decimal:
    return sum((s.amount for s in settlements), ZERO)


def total_settlement(
    units: Iterable[_HasAmount],
    settlements: Iterable[AdditionalSettlement],
) -> Decimal:
    return category_total(units) + additional_total(settlements)


@dataclass(frozen=True)
class SettlementBreakdown:
    """Totals of one job, split the way the payments screen shows them."""

    category_total: Decimal
    additional_total: Decimal
    per_category: dict[str, Decimal] = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return self.category_total + self.additional_total


def breakdown(
    units: Iterable[_HasAmount],
    settlements: Iterable[AdditionalSettlement],
) -> SettlementBreakdown:
    units = list(units)
    settlements = list(settlements)
    per_category: dict[str, Decimal] = {}
    for u in units:
        per_category[u.category_id] = u.amount if u.amount is not None else ZERO
    for s in settlements:
        per_category[s.category_id] = per_category.get(s.category_id, ZERO) + s.amount
    return SettlementBreakdown(
        category_total=category_total(units),
        additional_total=additional_total(settlements),
        per_category=per_category,
    )
