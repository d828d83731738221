from datetime import datetime, timedelta, timezone
from decimal import Decimal

from storefront.domain.models import CartLine, Coupon, DiscountType, Product
from storefront.domain.pricing import (
    calculate_totals, free_shipping_threshold, subtotal_of, total_weight,
)


def coupon(discount_type, value, usage_limit=None, used_count=0, days=1):
    now = datetime.now(timezone.utc)
    return Coupon(
        id="c1",
        code="SAVE10",
        discount_type=discount_type,
        discount_value=Decimal(value),
        valid_from=now - timedelta(days=days),
        valid_until=now + timedelta(days=days),
        usage_limit=usage_limit,
        used_count=used_count,
    )


class TestCalculateTotals:
    def test_plain_order(self):
        totals = calculate_totals(Decimal("20.00"), Decimal("0"), Decimal("5.00"), Decimal("0.10"))
        assert totals.subtotal == Decimal("20.00")
        assert totals.discount == Decimal("0")
        assert totals.shipping_cost == Decimal("5.00")
        assert totals.tax_amount == Decimal("2.00")
        assert totals.total_amount == Decimal("27.00")

    def test_tax_is_computed_after_discount(self):
        discount = coupon(DiscountType.PERCENTAGE, "10").discount_for(Decimal("20.00"))
        totals = calculate_totals(Decimal("20.00"), discount, Decimal("5.00"), Decimal("0.10"))
        assert totals.discount == Decimal("2.00")
        assert totals.discounted_subtotal == Decimal("18.00")
        assert totals.tax_amount == Decimal("1.80")
        assert totals.total_amount == Decimal("24.80")

    def test_discount_never_exceeds_subtotal(self):
        totals = calculate_totals(Decimal("20.00"), Decimal("50.00"), Decimal("5.00"), Decimal("0.10"))
        assert totals.discounted_subtotal == Decimal("0")
        assert totals.tax_amount == Decimal("0")
        assert totals.total_amount == Decimal("5.00")

    def test_tax_rounds_half_up_to_cents(self):
        totals = calculate_totals(Decimal("10.05"), Decimal("0"), Decimal("0"), Decimal("0.0725"))
        # 10.05 * 0.0725 = 0.728625
        assert totals.tax_amount == Decimal("0.73")

    def test_free_shipping_threshold_reached(self):
        totals = calculate_totals(
            Decimal("20.00"), Decimal("0"), Decimal("5.00"), Decimal("0.10"),
            free_shipping_threshold=Decimal("20.00"),
        )
        assert totals.is_free_shipping
        assert totals.shipping_cost == Decimal("0")
        assert totals.total_amount == Decimal("22.00")

    def test_free_shipping_uses_discounted_subtotal(self):
        totals = calculate_totals(
            Decimal("20.00"), Decimal("2.00"), Decimal("5.00"), Decimal("0.10"),
            free_shipping_threshold=Decimal("20.00"),
        )
        assert not totals.is_free_shipping
        assert totals.shipping_cost == Decimal("5.00")


class TestCouponRules:
    def test_fixed_discount_capped_at_subtotal(self):
        assert coupon(DiscountType.FIXED, "15").discount_for(Decimal("10.00")) == Decimal("10.00")
        assert coupon(DiscountType.FIXED, "5").discount_for(Decimal("10.00")) == Decimal("5.00")

    def test_percentage_discount(self):
        assert coupon(DiscountType.PERCENTAGE, "15").discount_for(Decimal("33.33")) == Decimal("5.00")

    def test_validity_window(self):
        c = coupon(DiscountType.FIXED, "5")
        assert c.is_within_window(datetime.now(timezone.utc))
        assert not c.is_within_window(datetime.now(timezone.utc) + timedelta(days=2))

    def test_usage_limit(self):
        assert coupon(DiscountType.FIXED, "5").has_uses_left()
        assert coupon(DiscountType.FIXED, "5", usage_limit=3, used_count=2).has_uses_left()
        assert not coupon(DiscountType.FIXED, "5", usage_limit=3, used_count=3).has_uses_left()


class TestLineAggregates:
    def setup_method(self):
        self.products = {
            "a": Product(id="a", price=Decimal("10.00"), stock=5, weight=2.5),
            "b": Product(id="b", price=Decimal("3.50"), stock=5, weight=None,
                         free_shipping_threshold=Decimal("40")),
        }
        self.lines = [CartLine(product_id="a", quantity=2), CartLine(product_id="b", quantity=3)]

    def test_subtotal(self):
        assert subtotal_of(self.lines, self.products) == Decimal("30.50")

    def test_weight_defaults_to_one_per_unit(self):
        assert total_weight(self.lines, self.products) == 8.0

    def test_lowest_threshold(self):
        assert free_shipping_threshold(self.products.values()) == Decimal("40")
        assert free_shipping_threshold([self.products["a"]]) is None
