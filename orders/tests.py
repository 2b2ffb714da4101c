import re
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from coupons import utils as coupon_utils
from main import factories
from main.test import AuthenticatedUserTestBase
from notification.models import Notification
from orders import utils as order_utils
from orders.enums import OrderStatus, OrderItemStatus, PaymentStatus, RefundStatus, PaymentMethod
from orders.models import Order, CartItem
from orders.utils import CartError, OrderError
from products.models import Product


class FeeTests(TestCase):
    def test_fixed_platform_fee(self):
        self.assertEqual(order_utils.calculate_platform_fee(Decimal("999")), Decimal("20.00"))

    @override_settings(PLATFORM_FEE=Decimal("2.5"), PLATFORM_FEE_TYPE="percentage")
    def test_percentage_platform_fee(self):
        self.assertEqual(order_utils.calculate_platform_fee(Decimal("1000")), Decimal("25.00"))

    def test_free_delivery_threshold(self):
        self.assertEqual(order_utils.calculate_delivery_fee(Decimal("499.99")), Decimal("50.00"))
        self.assertEqual(order_utils.calculate_delivery_fee(Decimal("500")), Decimal("0.00"))

    def test_order_amount_bounds(self):
        self.assertFalse(order_utils.is_valid_order_amount(99))
        self.assertTrue(order_utils.is_valid_order_amount(100))
        self.assertTrue(order_utils.is_valid_order_amount(50000))
        self.assertFalse(order_utils.is_valid_order_amount(50001))

    def test_order_number_format(self):
        order = factories.OrderFactory()
        self.assertRegex(order.order_number, r"^SP9\d{9}$")


class CartTests(TestCase):
    def setUp(self):
        self.user = factories.CustomerFactory()
        self.variant = factories.ProductVariantFactory(stock=12)
        self.product = self.variant.product

    def add(self, quantity=1, **kwargs):
        params = {"product_id": self.product.id, "variant_id": self.variant.id, "size": "M", "quantity": quantity}
        params.update(kwargs)
        return order_utils.add_to_cart(self.user, **params)

    def test_adding_same_line_merges_and_caps(self):
        self.add(6)
        item = self.add(7)
        self.assertEqual(item.quantity, 10)
        self.assertEqual(CartItem.objects.filter(cart__user=self.user).count(), 1)

    def test_size_must_match_variant(self):
        with self.assertRaisesMessage(CartError, "Size does not match the selected variant"):
            self.add(size="XL")

    def test_hidden_product_cannot_be_added(self):
        Product.objects.filter(pk=self.product.pk).update(approval_status="pending")
        with self.assertRaisesMessage(CartError, "Product not found"):
            self.add()

    def test_unknown_variant(self):
        with self.assertRaisesMessage(CartError, "Product variant not found"):
            self.add(variant_id=factories.ProductVariantFactory().id)

    def test_insufficient_stock(self):
        self.variant.stock = 1
        self.variant.save()
        with self.assertRaisesMessage(CartError, "Insufficient stock for selected variant"):
            self.add(2)

    def test_quantity_limits(self):
        with self.assertRaises(CartError):
            self.add(0)
        with self.assertRaises(CartError):
            self.add(11)

    def test_totals(self):
        self.add(2)
        totals = order_utils.calculate_cart_totals(self.user.cart)
        self.assertEqual(totals["total_amount"], Decimal("1600.00"))
        self.assertEqual(totals["discounted_amount"], Decimal("1000.00"))
        self.assertEqual(totals["discount"], Decimal("600.00"))
        self.assertEqual(totals["platform_fee"], Decimal("20.00"))
        self.assertEqual(totals["delivery_charge"], Decimal("0.00"))
        self.assertEqual(totals["final_amount"], Decimal("1020.00"))
        self.assertEqual(totals["total_items"], 2)

    def test_unselected_lines_are_not_counted(self):
        item = self.add(2)
        order_utils.update_cart_item(self.user, item.id, is_selected=False)
        totals = order_utils.calculate_cart_totals(self.user.cart)
        self.assertEqual(totals["discounted_amount"], Decimal("0.00"))

    def test_move_to_wishlist(self):
        item = self.add()
        wishlist_item = order_utils.move_to_wishlist(self.user, item.id)
        self.assertEqual(wishlist_item.product, self.product)
        self.assertFalse(CartItem.objects.filter(pk=item.pk).exists())

    def test_other_users_item_not_found(self):
        item = self.add()
        with self.assertRaisesMessage(CartError, "Item not found in cart"):
            order_utils.remove_cart_item(factories.CustomerFactory(), item.id)


class OrderLifecycleTests(TestCase):
    def setUp(self):
        self.admin = factories.AdminFactory()
        self.user = factories.CustomerFactory()
        self.variant = factories.ProductVariantFactory(stock=5)
        order_utils.add_to_cart(self.user, self.variant.product_id, self.variant.id, "M", 2)

    def place_order(self, **kwargs):
        return order_utils.create_order_from_cart(
            self.user, factories.address_payload(), kwargs.pop("payment_method", PaymentMethod.COD), **kwargs
        )

    def test_create_order_reserves_stock_and_empties_cart(self):
        order = self.place_order()

        self.assertEqual(order.final_amount, Decimal("1020.00"))
        self.assertEqual(order.items.get().seller, self.variant.product.vendor)
        self.variant.refresh_from_db()
        self.assertEqual(self.variant.stock, 3)
        self.assertFalse(self.user.cart.items.exists())
        self.assertTrue(Notification.objects.filter(user=self.admin).exists())
        self.assertTrue(Notification.objects.filter(user=self.variant.product.vendor).exists())

    def test_empty_cart(self):
        self.user.cart.items.all().delete()
        with self.assertRaisesMessage(OrderError, "Cart is empty"):
            self.place_order()

    def test_missing_address_field(self):
        with self.assertRaisesMessage(OrderError, "Shipping address pincode is required"):
            order_utils.create_order_from_cart(
                self.user, factories.address_payload(pincode=""), PaymentMethod.COD
            )

    def test_stock_change_after_adding_blocks_order(self):
        self.variant.stock = 1
        self.variant.save()
        with self.assertRaises(OrderError) as ctx:
            self.place_order()
        self.assertIn("Insufficient stock", str(ctx.exception))
        self.assertFalse(Order.objects.exists())

    def test_order_below_minimum_amount(self):
        cheap = factories.ProductVariantFactory(price=Decimal("40.00"), original_price=Decimal("50.00"))
        self.user.cart.items.all().delete()
        order_utils.add_to_cart(self.user, cheap.product_id, cheap.id, "M", 1)
        with self.assertRaises(OrderError):
            self.place_order()

    def test_coupon_usage_follows_order(self):
        coupon = factories.CouponFactory(code="TENOFF")
        coupon_utils.apply_coupon("tenoff", self.user)

        order = self.place_order()
        self.assertEqual(order.coupon_discount, Decimal("100.00"))
        self.assertEqual(order.final_amount, Decimal("920.00"))
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 1)

        order_utils.cancel_order(order, user=self.user, reason="Changed my mind")
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 0)

    def test_cancel_releases_stock(self):
        order = self.place_order()
        order_utils.cancel_order(order, user=self.user, reason="Too slow")

        self.variant.refresh_from_db()
        self.assertEqual(self.variant.stock, 5)
        order.refresh_from_db()
        self.assertEqual(order.order_status, OrderStatus.CANCELLED)
        self.assertIsNotNone(order.cancelled_at)
        self.assertIsNone(order.refund_status)
        self.assertEqual(set(order.items.values_list("status", flat=True)), {OrderItemStatus.CANCELLED})

    def test_cancel_paid_order_opens_refund(self):
        order = self.place_order()
        order_utils.process_payment(order, "pi_123")
        order_utils.cancel_order(order, user=self.user)
        self.assertEqual(order.refund_status, RefundStatus.PENDING)
        self.assertEqual(order.refund_amount, order.final_amount)

    def test_shipped_order_cannot_be_cancelled(self):
        order = self.place_order()
        order_utils.update_order_status(order, OrderStatus.SHIPPED, user=self.admin)
        with self.assertRaisesMessage(OrderError, "Order cannot be cancelled at this stage"):
            order_utils.cancel_order(order, user=self.user)

    def test_delivery_completes_payment_and_counts_sales(self):
        order = self.place_order()
        order_utils.update_order_status(order, OrderStatus.DELIVERED, user=self.admin, tracking_id="TRK1")
        order.refresh_from_db()
        self.assertEqual(order.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(order.tracking_id, "TRK1")
        self.assertIsNotNone(order.delivered_at)
        product = Product.objects.get(pk=self.variant.product_id)
        self.assertEqual(product.sales_count, 2)

    def test_repeated_delivery_is_a_no_op(self):
        order = self.place_order()
        order_utils.update_order_status(order, OrderStatus.DELIVERED, user=self.admin)
        delivered_at = order.delivered_at

        order_utils.update_order_status(order, OrderStatus.DELIVERED, user=self.admin)
        order.refresh_from_db()
        self.assertEqual(order.delivered_at, delivered_at)
        self.assertEqual(Product.objects.get(pk=self.variant.product_id).sales_count, 2)

    def test_delivered_order_cannot_move_back_or_cancel(self):
        order = self.place_order()
        order_utils.update_order_status(order, OrderStatus.DELIVERED, user=self.admin)

        with self.assertRaisesMessage(OrderError, "Order is already delivered"):
            order_utils.update_order_status(order, OrderStatus.PENDING, user=self.admin)
        with self.assertRaisesMessage(OrderError, "Order is already delivered"):
            order_utils.update_order_status(order, OrderStatus.CANCELLED, user=self.admin)

        order.refresh_from_db()
        self.assertEqual(order.order_status, OrderStatus.DELIVERED)
        self.variant.refresh_from_db()
        self.assertEqual(self.variant.stock, 3)

    def test_fulfilment_only_moves_forward(self):
        order = self.place_order()
        order_utils.update_order_status(order, OrderStatus.PROCESSING, user=self.admin)
        with self.assertRaisesMessage(OrderError, "Order cannot move back from processing to confirmed"):
            order_utils.update_order_status(order, OrderStatus.CONFIRMED, user=self.admin)
        with self.assertRaisesMessage(OrderError, "Returns are handled through the return and refund actions"):
            order_utils.update_order_status(order, OrderStatus.RETURNED, user=self.admin)

    def test_cancelled_lines_do_not_count_as_sales(self):
        order = factories.OrderFactory()
        kept = factories.OrderItemFactory(order=order)
        dropped = factories.OrderItemFactory(order=order, status=OrderItemStatus.CANCELLED)

        order_utils.update_order_status(order, OrderStatus.DELIVERED, user=self.admin)

        self.assertEqual(Product.objects.get(pk=kept.product_id).sales_count, 2)
        self.assertEqual(Product.objects.get(pk=dropped.product_id).sales_count, 0)
        dropped.refresh_from_db()
        self.assertEqual(dropped.status, OrderItemStatus.CANCELLED)

    def test_payment_confirms_pending_order(self):
        order = self.place_order(payment_method=PaymentMethod.STRIPE)
        order_utils.process_payment(order, "pi_abc")
        self.assertEqual(order.order_status, OrderStatus.CONFIRMED)
        with self.assertRaisesMessage(OrderError, "Order is already paid"):
            order_utils.process_payment(order, "pi_abc")

    def test_return_and_refund_flow(self):
        order = self.place_order()
        order_utils.update_order_status(order, OrderStatus.DELIVERED, user=self.admin)

        order_utils.request_return(order, "Wrong size")
        self.assertEqual(order.order_status, OrderStatus.RETURN_REQUESTED)
        self.assertEqual(order.refund_status, RefundStatus.PENDING)

        order_utils.process_refund(order, "approve", user=self.admin, amount=Decimal("500.00"))
        self.assertEqual(order.refund_status, RefundStatus.APPROVED)

        order_utils.process_refund(order, "process", user=self.admin)
        order.refresh_from_db()
        self.assertEqual(order.refund_status, RefundStatus.PROCESSED)
        self.assertEqual(order.payment_status, PaymentStatus.PARTIALLY_REFUNDED)
        self.assertEqual(order.order_status, OrderStatus.RETURNED)
        self.variant.refresh_from_db()
        self.assertEqual(self.variant.stock, 5)

    def test_return_window_expired(self):
        order = self.place_order()
        order_utils.update_order_status(order, OrderStatus.DELIVERED, user=self.admin)
        order.delivered_at = timezone.now() - timedelta(days=8)
        order.save()
        with self.assertRaises(OrderError) as ctx:
            order_utils.request_return(order, "Too late")
        self.assertIn("Return window has expired", str(ctx.exception))

    def test_refund_steps_must_be_in_order(self):
        order = self.place_order()
        with self.assertRaises(OrderError):
            order_utils.process_refund(order, "process")
        with self.assertRaises(OrderError):
            order_utils.process_refund(order, "refund-everything")

    def test_rejecting_return_restores_delivered(self):
        order = self.place_order()
        order_utils.update_order_status(order, OrderStatus.DELIVERED, user=self.admin)
        order_utils.request_return(order, "Did not like it")
        order_utils.process_refund(order, "reject", user=self.admin, reason="Used item")
        self.assertEqual(order.order_status, OrderStatus.DELIVERED)
        self.assertEqual(order.refund_status, RefundStatus.REJECTED)


class SellerStatusTests(TestCase):
    def setUp(self):
        self.order = factories.OrderFactory()
        self.first = factories.OrderItemFactory(order=self.order)
        self.second = factories.OrderItemFactory(order=self.order)

    def test_order_follows_slowest_seller(self):
        order_utils.update_seller_status(self.order, self.first.seller, OrderStatus.SHIPPED, tracking_id="TRK9")
        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.assertEqual(self.first.status, OrderItemStatus.SHIPPED)
        self.assertEqual(self.second.status, OrderItemStatus.PENDING)
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, OrderStatus.PENDING)
        self.assertEqual(self.order.tracking_id, "TRK9")

        order_utils.update_seller_status(self.order, self.second.seller, OrderStatus.PROCESSING)
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, OrderStatus.PROCESSING)
        self.first.refresh_from_db()
        self.assertEqual(self.first.status, OrderItemStatus.SHIPPED)

    def test_seller_cannot_cancel_or_move_back(self):
        with self.assertRaisesMessage(OrderError, "Sellers can only move their items forward"):
            order_utils.update_seller_status(self.order, self.first.seller, OrderStatus.CANCELLED)

        order_utils.update_seller_status(self.order, self.first.seller, OrderStatus.SHIPPED)
        with self.assertRaisesMessage(OrderError, "Items cannot move back to confirmed"):
            order_utils.update_seller_status(self.order, self.first.seller, OrderStatus.CONFIRMED)

    def test_seller_without_items_in_order(self):
        with self.assertRaisesMessage(OrderError, "This order has no items from you"):
            order_utils.update_seller_status(self.order, factories.VendorFactory(), OrderStatus.SHIPPED)


class CartApiTests(AuthenticatedUserTestBase):
    def setUp(self):
        super().setUp()
        self.variant = factories.ProductVariantFactory(stock=10)

    def test_add_and_view_cart(self):
        response = self.client.post(reverse("cart-add"), {
            "product_id": self.variant.product_id, "variant_id": self.variant.id, "size": "m", "quantity": 2,
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data["items"]), 1)
        self.assertEqual(response.data["summary"]["final_amount"], "1020.00")

    def test_update_and_remove_item(self):
        item = order_utils.add_to_cart(self.user, self.variant.product_id, self.variant.id, "M", 1)
        response = self.client.patch(reverse("cart-item", kwargs={"item_id": item.id}), {"quantity": 3}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["quantity"], 3)

        response = self.client.delete(reverse("cart-item", kwargs={"item_id": item.id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["items"], [])

    def test_apply_and_remove_coupon(self):
        factories.CouponFactory(code="FLAT50", discount_type="fixed", discount_value=Decimal("50.00"))
        order_utils.add_to_cart(self.user, self.variant.product_id, self.variant.id, "M", 1)

        response = self.client.post(reverse("cart-apply-coupon"), {"code": "flat50"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["message"], "Coupon applied! You saved ₹50.00")

        response = self.client.post(reverse("cart-remove-coupon"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["cart"]["applied_coupon"], "")

    def test_vendor_has_no_cart(self):
        self.authenticate(factories.VendorFactory())
        response = self.client.get(reverse("cart-list"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class OrderApiTests(AuthenticatedUserTestBase):
    def setUp(self):
        super().setUp()
        self.variant = factories.ProductVariantFactory(stock=10)
        order_utils.add_to_cart(self.user, self.variant.product_id, self.variant.id, "M", 1)

    def create_order(self):
        return self.client.post(reverse("order-list"), {
            "shipping_address": factories.address_payload(),
            "payment_method": "cod",
        }, format="json")

    def test_create_and_list(self):
        response = self.create_order()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertTrue(re.match(r"^SP9\d{9}$", response.data["order_number"]))

        response = self.client.get(reverse("order-list"))
        self.assertEqual(response.data["count"], 1)

    def test_invalid_phone_rejected(self):
        response = self.client.post(reverse("order-list"), {
            "shipping_address": factories.address_payload(phone="12345"),
            "payment_method": "cod",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_own_order(self):
        order_id = self.create_order().data["id"]
        response = self.client.post(reverse("order-cancel", args=[order_id]), {"reason": "Oops"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["order_status"], OrderStatus.CANCELLED)

    def test_other_customer_cannot_see_order(self):
        order_id = self.create_order().data["id"]
        self.authenticate(factories.CustomerFactory())
        response = self.client.get(reverse("order-detail", args=[order_id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_seller_sees_and_updates_order(self):
        order_id = self.create_order().data["id"]
        self.authenticate(self.variant.product.vendor)

        response = self.client.get(reverse("order-list"))
        self.assertEqual([o["id"] for o in response.data["results"]], [order_id])

        response = self.client.patch(
            reverse("order-update-status", args=[order_id]), {"order_status": "shipped"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["order_status"], OrderStatus.SHIPPED)

    def test_seller_cannot_cancel_shared_order(self):
        other = factories.ProductVariantFactory(stock=10)
        order_utils.add_to_cart(self.user, other.product_id, other.id, "M", 1)
        order_id = self.create_order().data["id"]
        self.authenticate(self.variant.product.vendor)

        response = self.client.patch(
            reverse("order-update-status", args=[order_id]), {"order_status": "cancelled"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        other.refresh_from_db()
        self.assertEqual(other.stock, 9)

        response = self.client.patch(
            reverse("order-update-status", args=[order_id]), {"order_status": "shipped"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["order_status"], OrderStatus.PENDING)
        statuses = {item["seller_id"]: item["status"] for item in response.data["items"]}
        self.assertEqual(statuses[self.variant.product.vendor_id], OrderItemStatus.SHIPPED)
        self.assertEqual(statuses[other.product.vendor_id], OrderItemStatus.PENDING)

    def test_customer_cannot_update_status(self):
        order_id = self.create_order().data["id"]
        response = self.client.patch(
            reverse("order-update-status", args=[order_id]), {"order_status": "delivered"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_receipt(self):
        order_number = self.create_order().data["order_number"]
        response = self.client.get(reverse("order-receipt", kwargs={"order_number": order_number}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["is_paid"])
        self.assertEqual(response.data["items"][0]["line_total"], "500.00")


class AdminOrderApiTests(AuthenticatedUserTestBase):
    ROLE = "admin"

    def test_bulk_status_reports_missing_and_failed(self):
        pending = factories.OrderFactory()
        cancelled = factories.OrderFactory(order_status=OrderStatus.CANCELLED)
        response = self.client.post(reverse("bulk-order-status"), {
            "order_ids": [pending.id, cancelled.id, 999999],
            "order_status": "processing",
        }, format="json")
        self.assertEqual(response.data["updated"], [pending.id])
        self.assertEqual(
            sorted(f["order_id"] for f in response.data["failed"]), sorted([cancelled.id, 999999])
        )

    def test_refund_endpoint_and_refund_list(self):
        order = factories.OrderFactory(
            order_status=OrderStatus.RETURN_REQUESTED,
            refund_status=RefundStatus.PENDING,
            refund_amount=Decimal("1020.00"),
        )
        response = self.client.post(reverse("order-refund", args=[order.id]), {"action": "approve"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["refund_status"], RefundStatus.APPROVED)

        response = self.client.get(reverse("order-refunds"), {"refund_status": "approved"})
        self.assertEqual([o["id"] for o in response.data["results"]], [order.id])

    def test_confirm_payment(self):
        order = factories.OrderFactory(payment_method=PaymentMethod.UPI)
        response = self.client.post(
            reverse("order-confirm-payment", args=[order.id]), {"payment_id": "UPI-42"}, format="json"
        )
        self.assertEqual(response.data["payment_status"], PaymentStatus.COMPLETED)
        self.assertEqual(response.data["order_status"], OrderStatus.CONFIRMED)
