from unittest import mock

from django.test import TestCase
from django.urls import reverse
from rest_framework import status

from inventory import utils as inventory_utils
from inventory.enums import StockOperation, StockAlertSeverity
from inventory.models import StockMovement
from inventory.utils import InsufficientStock, ProductNotFound, VariantNotFound, InventoryError
from main import factories
from main.test import AuthenticatedUserTestBase
from notification.models import Notification


class UpdateStockTests(TestCase):
    def setUp(self):
        self.variant = factories.ProductVariantFactory(stock=3)
        self.product = self.variant.product

    def test_decrease_records_movement(self):
        variant = inventory_utils.update_stock(self.product.id, self.variant.id, 2, StockOperation.DECREASE, "sale")
        self.assertEqual(variant.stock, 1)
        movement = StockMovement.objects.get()
        self.assertEqual((movement.previous_stock, movement.new_stock, movement.quantity), (3, 1, -2))
        self.assertEqual(movement.reason, "sale")

    def test_insufficient_stock_changes_nothing(self):
        with self.assertRaises(InsufficientStock) as ctx:
            inventory_utils.update_stock(self.product.id, self.variant.id, 5, StockOperation.DECREASE)
        self.assertEqual(str(ctx.exception), "Insufficient stock. Available: 3, Requested: 5")
        self.variant.refresh_from_db()
        self.assertEqual(self.variant.stock, 3)
        self.assertFalse(StockMovement.objects.exists())

    def test_missing_product_and_variant(self):
        with self.assertRaises(ProductNotFound):
            inventory_utils.update_stock(999999, self.variant.id, 1, StockOperation.INCREASE)
        other = factories.ProductVariantFactory()
        with self.assertRaises(VariantNotFound):
            inventory_utils.update_stock(self.product.id, other.id, 1, StockOperation.INCREASE)

    def test_invalid_quantity_and_operation(self):
        with self.assertRaises(InventoryError):
            inventory_utils.update_stock(self.product.id, self.variant.id, 0, StockOperation.INCREASE)
        with self.assertRaises(InventoryError):
            inventory_utils.update_stock(self.product.id, self.variant.id, 1, "explode")

    def test_out_of_stock_deactivates_then_reactivates(self):
        inventory_utils.update_stock(self.product.id, self.variant.id, 3, StockOperation.DECREASE)
        self.product.refresh_from_db()
        self.assertFalse(self.product.is_active)

        inventory_utils.update_stock(self.product.id, self.variant.id, 4, StockOperation.INCREASE)
        self.product.refresh_from_db()
        self.assertTrue(self.product.is_active)
        self.assertEqual(Notification.objects.filter(user=self.product.vendor).count(), 2)

    def test_crossing_low_threshold_notifies_vendor_once(self):
        variant = factories.ProductVariantFactory(stock=12)
        inventory_utils.update_stock(variant.product_id, variant.id, 4, StockOperation.DECREASE)
        inventory_utils.update_stock(variant.product_id, variant.id, 1, StockOperation.DECREASE)
        notifications = Notification.objects.filter(user=variant.product.vendor)
        self.assertEqual(notifications.count(), 1)
        self.assertEqual(notifications.get().meta_data["stock"], 8)

    def test_other_variant_in_stock_keeps_product_active(self):
        factories.ProductVariantFactory(product=self.product, size="L", stock=2)
        inventory_utils.update_stock(self.product.id, self.variant.id, 3, StockOperation.DECREASE)
        self.product.refresh_from_db()
        self.assertTrue(self.product.is_active)


class StockBatchTests(TestCase):
    def setUp(self):
        self.first = factories.ProductVariantFactory(stock=5)
        self.second = factories.ProductVariantFactory(stock=1)
        self.items = [
            {"product_id": self.first.product_id, "variant_id": self.first.id, "quantity": 2},
            {"product_id": self.second.product_id, "variant_id": self.second.id, "quantity": 3},
        ]

    def test_reserve_is_all_or_nothing(self):
        with self.assertRaises(InsufficientStock):
            inventory_utils.reserve_stock(self.items)
        self.first.refresh_from_db()
        self.assertEqual(self.first.stock, 5)

    def test_reserve_and_release(self):
        self.items[1]["quantity"] = 1
        inventory_utils.reserve_stock(self.items)
        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.assertEqual((self.first.stock, self.second.stock), (3, 0))

        inventory_utils.release_stock(self.items)
        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.assertEqual((self.first.stock, self.second.stock), (5, 1))

    @mock.patch("inventory.utils.transactions_supported", return_value=False)
    def test_fallback_without_transactions_rolls_back_applied_items(self, _supported):
        with self.assertLogs("inventory.utils", level="WARNING") as logs:
            with self.assertRaises(InsufficientStock):
                inventory_utils.reserve_stock(self.items)

        self.assertIn("does not support transactions", logs.output[0])
        self.first.refresh_from_db()
        self.assertEqual(self.first.stock, 5)
        operations = list(
            StockMovement.objects.filter(variant=self.first).order_by("id").values_list("operation", flat=True)
        )
        self.assertEqual(operations, [StockOperation.DECREASE, StockOperation.INCREASE])

    @mock.patch("inventory.utils.transactions_supported", return_value=False)
    def test_fallback_applies_every_item(self, _supported):
        self.items[1]["quantity"] = 1
        inventory_utils.reserve_stock(self.items)
        self.second.refresh_from_db()
        self.assertEqual(self.second.stock, 0)

    def test_check_stock(self):
        result = inventory_utils.check_stock(self.items + [
            {"product_id": self.first.product_id, "variant_id": 987654, "quantity": 1},
        ])
        self.assertFalse(result["in_stock"])
        self.assertEqual(
            [(u["variant_id"], u["available"]) for u in result["unavailable_items"]],
            [(self.second.id, 1), (987654, 0)],
        )


class StockReportTests(TestCase):
    def test_alerts_sorted_by_severity(self):
        low = factories.ProductVariantFactory(stock=8)
        out = factories.ProductVariantFactory(stock=0)
        critical = factories.ProductVariantFactory(stock=4)
        factories.ProductVariantFactory(stock=50)

        alerts = inventory_utils.get_low_stock_alerts()
        self.assertEqual([a["variant_id"] for a in alerts], [out.id, critical.id, low.id])
        self.assertEqual(
            [a["severity"] for a in alerts],
            [StockAlertSeverity.OUT_OF_STOCK, StockAlertSeverity.CRITICAL, StockAlertSeverity.LOW],
        )

    def test_report_counts(self):
        factories.ProductVariantFactory(stock=0)
        factories.ProductVariantFactory(stock=3)
        factories.ProductVariantFactory(stock=9)
        factories.ProductVariantFactory(stock=40)
        report = inventory_utils.get_inventory_report()
        self.assertEqual(report["total_variants"], 4)
        self.assertEqual(report["total_stock"], 52)
        self.assertEqual(report["out_of_stock_items"], 1)
        self.assertEqual(report["critical_stock_items"], 1)
        self.assertEqual(report["low_stock_items"], 1)

    def test_bulk_update_continues_after_failure(self):
        variant = factories.ProductVariantFactory(stock=5)
        result = inventory_utils.bulk_update_stock([
            {"sku": "MISSING-SKU", "new_stock": 3},
            {"sku": variant.sku, "new_stock": -4},
        ])
        self.assertEqual(result["failed"][0]["sku"], "MISSING-SKU")
        self.assertEqual(result["successful"], [{"sku": variant.sku, "previous_stock": 5, "new_stock": 0}])
        variant.product.refresh_from_db()
        self.assertFalse(variant.product.is_active)


class InventoryApiTests(AuthenticatedUserTestBase):
    ROLE = "vendor"

    def setUp(self):
        super().setUp()
        self.variant = factories.ProductVariantFactory(product__vendor=self.user, stock=10)

    def test_update_own_stock(self):
        response = self.client.post(reverse("inventory-update-stock"), {
            "product_id": self.variant.product_id,
            "variant_id": self.variant.id,
            "quantity": 4,
            "operation": "decrease",
            "reason": "Damaged",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["stock"], 6)
        self.assertTrue(response.data["product_active"])

    def test_insufficient_stock_is_400(self):
        response = self.client.post(reverse("inventory-update-stock"), {
            "product_id": self.variant.product_id,
            "variant_id": self.variant.id,
            "quantity": 40,
            "operation": "decrease",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("Insufficient stock", response.data["error"])

    def test_unknown_variant_is_404(self):
        response = self.client.post(reverse("inventory-update-stock"), {
            "product_id": self.variant.product_id,
            "variant_id": 123456,
            "quantity": 1,
            "operation": "increase",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_cannot_touch_other_vendor_stock(self):
        other = factories.ProductVariantFactory()
        response = self.client.post(reverse("inventory-update-stock"), {
            "product_id": other.product_id,
            "variant_id": other.id,
            "quantity": 1,
            "operation": "increase",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_history_newest_first(self):
        inventory_utils.update_stock(self.variant.product_id, self.variant.id, 1, StockOperation.DECREASE)
        inventory_utils.update_stock(self.variant.product_id, self.variant.id, 5, StockOperation.INCREASE)
        response = self.client.get(reverse("inventory-history", kwargs={"product_id": self.variant.product_id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([m["operation"] for m in response.data], ["increase", "decrease"])

    def test_alerts_scoped_to_vendor(self):
        factories.ProductVariantFactory(stock=0)
        mine = factories.ProductVariantFactory(product__vendor=self.user, stock=2)
        response = self.client.get(reverse("inventory-alerts"))
        self.assertEqual([a["variant_id"] for a in response.data["alerts"]], [mine.id])

    def test_check_is_public(self):
        self.logout()
        response = self.client.post(reverse("inventory-check"), {
            "items": [{"product_id": self.variant.product_id, "variant_id": self.variant.id, "quantity": 2}],
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["in_stock"])

    def test_customer_forbidden(self):
        self.authenticate(factories.CustomerFactory())
        response = self.client.get(reverse("inventory-report"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
