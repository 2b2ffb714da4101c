from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from coupons import utils as coupon_utils
from coupons.enums import DiscountType
from coupons.models import Coupon
from coupons.utils import CouponError
from main import factories
from main.test import AuthenticatedUserTestBase
from orders import utils as order_utils


class CouponModelTests(TestCase):
    def test_code_is_upper_cased(self):
        coupon = factories.CouponFactory(code="  welcome10 ")
        self.assertEqual(coupon.code, "WELCOME10")

    def test_percentage_discount_capped(self):
        coupon = factories.CouponFactory(discount_value=Decimal("50"), max_discount_amount=Decimal("300"))
        self.assertEqual(coupon.calculate_discount(Decimal("1000")), Decimal("300.00"))
        self.assertEqual(coupon.calculate_discount(Decimal("400")), Decimal("200.00"))

    def test_fixed_discount_never_exceeds_amount(self):
        coupon = factories.CouponFactory(
            discount_type=DiscountType.FIXED, discount_value=Decimal("150"), max_discount_amount=Decimal("10"),
        )
        self.assertIsNone(coupon.max_discount_amount)
        self.assertEqual(coupon.calculate_discount(Decimal("100")), Decimal("100.00"))

    def test_invalid_dates_and_percentage(self):
        with self.assertRaises(ValidationError):
            factories.CouponFactory(valid_until=timezone.now() - timedelta(days=2))
        with self.assertRaises(ValidationError):
            factories.CouponFactory(discount_value=Decimal("120"))

    def test_can_be_used_reasons(self):
        now = timezone.now()
        cases = [
            (dict(is_active=False), "Coupon is not active"),
            (dict(valid_from=now + timedelta(days=1), valid_until=now + timedelta(days=2)), "Coupon is not yet valid"),
            (dict(valid_from=now - timedelta(days=3), valid_until=now - timedelta(days=1)), "Coupon has expired"),
            (dict(usage_limit=1, used_count=1), "Coupon usage limit exceeded"),
            (dict(min_order_amount=Decimal("2000")), "Minimum order amount of ₹2000 required"),
        ]
        for overrides, reason in cases:
            coupon = factories.CouponFactory(**overrides)
            self.assertEqual(coupon.can_be_used(Decimal("1000")), (False, reason))

    def test_category_and_product_scope(self):
        category = factories.CategoryFactory()
        coupon = factories.CouponFactory()
        coupon.applicable_categories.add(category)
        self.assertEqual(coupon.can_be_used(500, []), (False, "Coupon not applicable to cart items"))
        self.assertEqual(coupon.can_be_used(500, [category.id + 1]), (False, "Coupon not applicable to selected categories"))
        self.assertEqual(coupon.can_be_used(500, [category.id]), (True, None))

        product = factories.ProductFactory()
        product_coupon = factories.CouponFactory()
        product_coupon.applicable_products.add(product)
        self.assertEqual(
            product_coupon.can_be_used(500, product_ids=[product.id + 1]),
            (False, "Coupon not applicable to selected products"),
        )

    def test_valid_queryset(self):
        valid = factories.CouponFactory()
        factories.CouponFactory(is_active=False)
        factories.CouponFactory(usage_limit=2, used_count=2)
        self.assertEqual(list(Coupon.objects.valid()), [valid])


class CouponCartTests(TestCase):
    def setUp(self):
        self.user = factories.CustomerFactory()
        self.variant = factories.ProductVariantFactory(stock=10)
        order_utils.add_to_cart(self.user, self.variant.product_id, self.variant.id, "M", 2)

    def test_apply_coupon(self):
        factories.CouponFactory(code="SAVE10")
        result = coupon_utils.apply_coupon("save10", self.user)
        self.assertEqual(result["discount"], Decimal("100.00"))
        self.assertEqual(result["message"], "Coupon applied! You saved ₹100.00")
        self.user.cart.refresh_from_db()
        self.assertEqual(self.user.cart.applied_coupon, "SAVE10")

    def test_unknown_code(self):
        with self.assertRaisesMessage(CouponError, "Invalid coupon code"):
            coupon_utils.validate_coupon("NOPE", self.user)

    def test_empty_cart(self):
        factories.CouponFactory(code="SAVE10")
        with self.assertRaisesMessage(CouponError, "Cart is empty"):
            coupon_utils.validate_coupon("SAVE10", factories.CustomerFactory())

    def test_coupon_dropped_when_cart_falls_below_minimum(self):
        factories.CouponFactory(code="BIG", min_order_amount=Decimal("800"))
        coupon_utils.apply_coupon("BIG", self.user)

        item = self.user.cart.items.get()
        order_utils.update_cart_item(self.user, item.id, quantity=1)

        self.user.cart.refresh_from_db()
        self.assertEqual(self.user.cart.applied_coupon, "")
        self.assertEqual(self.user.cart.coupon_discount, Decimal("0.00"))

    def test_discount_recomputed_when_cart_grows(self):
        factories.CouponFactory(code="SAVE10")
        coupon_utils.apply_coupon("SAVE10", self.user)
        item = self.user.cart.items.get()
        order_utils.update_cart_item(self.user, item.id, quantity=4)
        self.user.cart.refresh_from_db()
        self.assertEqual(self.user.cart.coupon_discount, Decimal("200.00"))

    def test_usage_counters(self):
        coupon = factories.CouponFactory(code="COUNT")
        coupon_utils.increment_usage("COUNT")
        coupon_utils.decrement_usage("COUNT")
        coupon_utils.decrement_usage("COUNT")
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 0)


class CouponAdminApiTests(AuthenticatedUserTestBase):
    ROLE = "admin"

    def payload(self, **overrides):
        now = timezone.now()
        data = {
            "code": "festive25",
            "description": "Festive offer",
            "discount_type": "percentage",
            "discount_value": "25.00",
            "max_discount_amount": "500.00",
            "usage_limit": 100,
            "valid_from": now.isoformat(),
            "valid_until": (now + timedelta(days=10)).isoformat(),
        }
        data.update(overrides)
        return data

    def test_create(self):
        response = self.client.post(reverse("coupon-list"), self.payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["code"], "FESTIVE25")
        self.assertTrue(response.data["is_valid"])

    def test_duplicate_code_rejected(self):
        factories.CouponFactory(code="FESTIVE25")
        response = self.client.post(reverse("coupon-list"), self.payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("code", response.data)

    def test_bad_code_format_rejected(self):
        response = self.client.post(reverse("coupon-list"), self.payload(code="no spaces!"), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_percentage_over_100_rejected(self):
        response = self.client.post(reverse("coupon-list"), self.payload(discount_value="150"), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("discount_value", response.data)

    def test_expired_filter(self):
        expired = factories.CouponFactory()
        Coupon.objects.filter(pk=expired.pk).update(
            valid_from=timezone.now() - timedelta(days=5), valid_until=timezone.now() - timedelta(days=1)
        )
        factories.CouponFactory()
        response = self.client.get(reverse("coupon-list"), {"state": "expired"})
        self.assertEqual([c["id"] for c in response.data["results"]], [expired.id])


class CouponCustomerApiTests(AuthenticatedUserTestBase):
    def test_customer_cannot_manage(self):
        response = self.client.get(reverse("coupon-list"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_available_and_validate(self):
        variant = factories.ProductVariantFactory()
        order_utils.add_to_cart(self.user, variant.product_id, variant.id, "M", 1)
        factories.CouponFactory(code="HELLO5", discount_value=Decimal("5"))
        scoped = factories.CouponFactory(code="ELSEWHERE")
        scoped.applicable_products.add(factories.ProductFactory())

        response = self.client.get(reverse("coupon-available"))
        self.assertEqual([c["code"] for c in response.data], ["HELLO5"])

        response = self.client.post(reverse("coupon-validate-code"), {"code": "hello5"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["valid"])
        self.assertEqual(response.data["discount"], Decimal("25.00"))

        response = self.client.post(reverse("coupon-validate-code"), {"code": "ELSEWHERE"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "Coupon not applicable to selected products")
