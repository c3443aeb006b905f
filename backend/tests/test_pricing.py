# Overview: Pytest coverage for estimate pricing arithmetic.

from decimal import Decimal

import pytest

from estimate_desk.errors import ValidationError
from estimate_desk.services.pricing import discount_amount, line_total, price_estimate


D = Decimal


class TestLineTotals:

    def test_line_total_is_quantity_times_rate(self):
        assert line_total(D("10"), D("30")) == D("300.00")

    def test_fractional_quantity_rounds_half_up(self):
        # 2.5 * 0.35 = 0.875
        assert line_total(D("2.5"), D("0.35")) == D("0.88")


class TestDiscount:

    def test_percentage_discount(self):
        assert discount_amount(D("300.00"), D("10"), "percentage") == D("30.00")

    def test_amount_discount_is_flat(self):
        assert discount_amount(D("300.00"), D("45.5"), "amount") == D("45.50")

    def test_unknown_discount_type_rejected(self):
        with pytest.raises(ValidationError):
            discount_amount(D("100"), D("5"), "bogus")


class TestPriceEstimate:

    def test_percentage_discount_and_loading(self):
        """10 x 30.00, 10% off, 50.00 loading -> 300 - 30 + 50 = 320.00."""
        totals = price_estimate(
            [(1, D("10"), D("30"))],
            discount=D("10"),
            discount_type="percentage",
            loading_charges=D("50"),
        )
        assert totals.subtotal == D("300.00")
        assert totals.discount_amount == D("30.00")
        assert totals.loading_charges == D("50.00")
        assert totals.total == D("320.00")
        assert totals.lines[0].total == D("300.00")

    def test_subtotal_is_sum_of_lines(self):
        totals = price_estimate([(1, D("2"), D("65")), (2, D("3"), D("30"))])
        assert [line.total for line in totals.lines] == [D("130.00"), D("90.00")]
        assert totals.subtotal == D("220.00")
        assert totals.total == D("220.00")

    def test_flat_discount_larger_than_subtotal_goes_negative(self):
        totals = price_estimate([(1, D("1"), D("100"))], discount=D("150"), discount_type="amount")
        assert totals.total == D("-50.00")

    def test_rate_is_rounded_before_line_total(self):
        totals = price_estimate([(1, D("3"), D("10.005"))])
        assert totals.lines[0].rate == D("10.01")
        assert totals.lines[0].total == D("30.03")
