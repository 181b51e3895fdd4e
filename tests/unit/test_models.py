"""Tests for bullion_sentinel.core.models."""

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from bullion_sentinel.core.models import (
    ZERO_TIME,
    CycleStatus,
    CycleSummary,
    Product,
    Quote,
)


class TestQuote:
    def test_prices_quantized_to_five_places(self, make_quote):
        q = make_quote(buy_price=Decimal("2000.1"), sell_price=Decimal("2010.123456"))
        assert q.buy_price == Decimal("2000.10000")
        assert str(q.buy_price) == "2000.10000"
        assert str(q.sell_price) == "2010.12346"

    def test_float_prices_do_not_carry_binary_noise(self, make_quote):
        q = make_quote(sell_price=0.1)
        assert str(q.sell_price) == "0.10000"

    def test_negative_price_rejected(self, make_quote):
        with pytest.raises(ValidationError, match="non-negative"):
            make_quote(sell_price=Decimal("-1"))

    def test_price_with_too_many_digits_rejected(self, make_quote):
        with pytest.raises(ValidationError, match="too many digits"):
            make_quote(sell_price=Decimal("1e23"))

    def test_zero_price_allowed(self, make_quote):
        assert make_quote(buy_price=Decimal("0")).buy_price == Decimal("0")

    def test_naive_timestamp_taken_as_utc(self, make_quote):
        q = make_quote(observed_at=datetime(2024, 1, 1, 10, 0, 0))
        assert q.observed_at.tzinfo is UTC

    def test_aware_timestamp_converted_to_utc(self, make_quote):
        plus3 = timezone(timedelta(hours=3))
        q = make_quote(observed_at=datetime(2024, 1, 1, 13, 0, 0, tzinfo=plus3))
        assert q.observed_at == datetime(2024, 1, 1, 10, 0, 0, tzinfo=UTC)

    def test_timestamp_outside_utc_range_rejected(self, make_quote):
        plus1 = timezone(timedelta(hours=1))
        with pytest.raises(ValidationError, match="outside the UTC range"):
            make_quote(observed_at=datetime(1, 1, 1, tzinfo=plus1))

    def test_has_timestamp(self, make_quote):
        assert make_quote().has_timestamp
        assert not make_quote(observed_at=ZERO_TIME).has_timestamp

    def test_is_frozen(self, sample_quote):
        with pytest.raises(ValidationError):
            sample_quote.sell_price = Decimal("1")


class TestProduct:
    def test_name_stripped(self):
        assert Product(id=1, name="  Gold  ").name == "Gold"

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError, match="blank"):
            Product(id=1, name="   ")


class TestCycleSummary:
    def test_dropped_counts_records_beyond_cap(self):
        now = datetime.now(UTC)
        s = CycleSummary(
            status=CycleStatus.OK,
            fetched=12,
            attempted=8,
            inserted=8,
            started_at=now,
            finished_at=now,
        )
        assert s.dropped == 4
