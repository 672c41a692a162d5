"""
Settlement arithmetic and the value objects it works on.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from fieldwork_kernel.domain import settlement
from fieldwork_kernel.domain.schedule import CategorySchedule
from fieldwork_kernel.domain.stages import WorkType
from fieldwork_kernel.domain.values import (
    AdditionalSettlement,
    Cargo,
    Location,
    RateEntry,
    RateInfo,
    TransportInfo,
)
from fieldwork_kernel.exceptions import ValidationError

NOW = datetime(2024, 4, 1, 6, 0, tzinfo=timezone.utc)


def _transport(**overrides):
    fields = dict(
        origin=Location(address="해남 들녘"),
        destination=Location(address="광주 공판장"),
        cargo=Cargo(type="배추", quantity=300, unit="망"),
        distance=Decimal("42"),
        distance_rate=Decimal("1500"),
        additional_fee=Decimal("20000"),
    )
    fields.update(overrides)
    return TransportInfo(**fields)


def _settled(category_id, amount):
    return AdditionalSettlement(
        category_id=category_id, amount=amount, reason="추가", settled_at=NOW
    )


class TestValues:
    def test_numbers_become_decimals(self):
        rate = RateEntry(base_rate=0.1, quantity=3)
        assert rate.base_rate == Decimal("0.1")
        assert rate.quantity == Decimal("3")

    @pytest.mark.parametrize("bad", ["abc", True, float("nan"), -1])
    def test_bad_rate_rejected(self, bad):
        with pytest.raises(ValidationError) as exc:
            RateEntry(base_rate=bad)
        assert exc.value.field == "base_rate"

    def test_negotiated_rate_wins(self):
        assert RateEntry(base_rate=1000, negotiated_rate=900).effective_rate == Decimal("900")
        assert RateEntry(base_rate=1000).effective_rate == Decimal("1000")

    def test_rate_info_prefills_entry(self):
        info = RateInfo(base_rate=1000, unit="망", quantity=10, additional_amount=5000)
        entry = info.to_entry()
        assert entry == RateEntry(base_rate=1000, quantity=10, unit="망")

    def test_negative_distance_rejected(self):
        with pytest.raises(ValidationError):
            _transport(distance=-1)

    def test_amounts_are_rounded_to_stored_precision(self):
        assert RateEntry(base_rate="0.0000000015").base_rate == Decimal("0.000000002")
        assert str(RateEntry(base_rate="3000").base_rate) == "3000"

    def test_too_many_digits_rejected(self):
        with pytest.raises(ValidationError):
            RateEntry(base_rate="12345678901234567890.1234567891")


class TestUnitAmount:
    def test_base_amount(self):
        assert settlement.base_amount(RateEntry(base_rate=1000, quantity=3)) == Decimal("3000")

    def test_unit_amount_is_rounded(self):
        rate = RateEntry(base_rate="0.123456789", quantity="0.1")
        assert settlement.unit_amount(rate) == Decimal("0.012345679")

    def test_missing_quantity_counts_as_zero(self):
        assert settlement.base_amount(RateEntry(base_rate=1000)) == Decimal("0")

    def test_transport_surcharge(self):
        assert settlement.transport_surcharge(_transport()) == Decimal("83000")
        assert settlement.transport_surcharge(_transport(distance=None)) == Decimal("20000")
        assert settlement.transport_surcharge(None) == Decimal("0")

    def test_surcharge_only_for_transport_units(self):
        rate = RateEntry(base_rate=50000, quantity=1)
        transport = _transport()
        assert settlement.unit_amount(rate, transport, is_transport=False) == Decimal("50000")
        assert settlement.unit_amount(rate, transport, is_transport=True) == Decimal("133000")

    @pytest.mark.parametrize(
        "work_type, name, expected",
        [
            (WorkType.TRANSPORT, "뽑기", True),
            (WorkType.PULLING, "운송", True),
            (None, "운송", True),
            (WorkType.PULLING, "뽑기", False),
        ],
    )
    def test_is_transport_unit(self, work_type, name, expected):
        assert settlement.is_transport_unit(work_type, name, ("운송",)) is expected


class TestTotals:
    def test_total_ignores_units_without_amount(self):
        units = [
            CategorySchedule("cat-1", "뽑기", amount=Decimal("3000")),
            CategorySchedule("cat-2", "자르기"),
        ]
        extras = [_settled("cat-1", 500), _settled("cat-2", -200)]

        assert settlement.category_total(units) == Decimal("3000")
        assert settlement.additional_total(extras) == Decimal("300")
        assert settlement.total_settlement(units, extras) == Decimal("3300")

    def test_breakdown(self):
        units = [
            CategorySchedule("cat-1", "뽑기", amount=Decimal("3000")),
            CategorySchedule("cat-2", "자르기"),
        ]
        result = settlement.breakdown(units, [_settled("cat-2", 700)])

        assert result.per_category == {"cat-1": Decimal("3000"), "cat-2": Decimal("700")}
        assert result.total == Decimal("3700")

    def test_empty(self):
        assert settlement.total_settlement([], []) == Decimal("0")
