from decimal import Decimal

from django.urls import reverse
from rest_framework import status

from main import factories
from main.test import AuthenticatedUserTestBase
from notification.models import Notification
from products.enums import ApprovalStatus
from inventory.models import StockMovement
from products.models import Product


def product_payload(category, **overrides):
    data = {
        "name": "Linen Kurta",
        "description": "Breathable linen",
        "brand": "Fabindia",
        "category": category.id,
        "tags": ["linen", "ethnic"],
        "images": ["https://cdn.example.com/kurta.jpg"],
        "variants": [
            {"color": "White", "color_code": "#FFFFFF", "size": "M",
             "price": "1200.00", "original_price": "1500.00", "stock": 5},
            {"color": "White", "color_code": "#FFFFFF", "size": "L",
             "price": "1100.00", "original_price": "1500.00", "stock": 0},
        ],
        "specification": {"fabric": "Linen", "fit": "Regular"},
    }
    data.update(overrides)
    return data


class VendorProductTests(AuthenticatedUserTestBase):
    ROLE = "vendor"

    def setUp(self):
        super().setUp()
        self.admin = factories.AdminFactory()
        self.category = factories.CategoryFactory()

    def test_vendor_product_starts_pending_and_notifies_admins(self):
        response = self.client.post(reverse("product-list"), product_payload(self.category), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        product = Product.objects.get(pk=response.data["id"])
        self.assertEqual(product.approval_status, ApprovalStatus.PENDING)
        self.assertEqual(product.vendor, self.user)
        self.assertEqual(product.price, Decimal("1100.00"))
        self.assertEqual(product.available_sizes, ["L", "M"])
        self.assertEqual(product.total_stock, 5)
        self.assertTrue(Notification.objects.filter(user=self.admin).exists())

    def test_price_above_original_rejected(self):
        payload = product_payload(self.category)
        payload["variants"][0]["price"] = "2000.00"
        response = self.client.post(reverse("product-list"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_variant_combination_rejected(self):
        payload = product_payload(self.category)
        payload["variants"][1]["size"] = "M"
        response = self.client.post(reverse("product-list"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("variants", response.data)

    def test_subcategory_must_belong_to_category(self):
        foreign_sub = factories.SubCategoryFactory()
        payload = product_payload(self.category, sub_category=foreign_sub.id)
        response = self.client.post(reverse("product-list"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("sub_category", response.data)

    def test_vendor_sees_only_own_products(self):
        own = factories.ProductFactory(vendor=self.user)
        factories.ProductFactory()
        response = self.client.get(reverse("product-list"))
        self.assertEqual([p["id"] for p in response.data["results"]], [own.id])

    def test_edit_resubmits_for_approval(self):
        product = factories.ProductFactory(vendor=self.user)
        factories.ProductVariantFactory(product=product)
        response = self.client.patch(reverse("product-detail", args=[product.id]), {"brand": "New"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.approval_status, ApprovalStatus.PENDING)

    def test_create_without_stock_deactivates(self):
        payload = product_payload(self.category)
        payload["variants"][0]["stock"] = 0
        response = self.client.post(reverse("product-list"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertFalse(response.data["is_active"])
        self.assertFalse(Product.objects.get(pk=response.data["id"]).is_active)
        self.assertFalse(StockMovement.objects.exists())

    def test_created_stock_is_recorded(self):
        response = self.client.post(reverse("product-list"), product_payload(self.category), format="json")
        movement = StockMovement.objects.get(product_id=response.data["id"])
        self.assertEqual((movement.operation, movement.previous_stock, movement.new_stock), ("set", 0, 5))
        self.assertEqual(movement.performed_by, self.user)

    def test_stock_edit_goes_through_inventory_rules(self):
        product = factories.ProductFactory(vendor=self.user)
        variant = factories.ProductVariantFactory(product=product, stock=4)

        def edit_stock(stock):
            return self.client.patch(reverse("product-detail", args=[product.id]), {
                "variants": [{
                    "id": variant.id, "color": "Blue", "color_code": "#0000FF", "size": "M",
                    "price": "500.00", "original_price": "800.00", "stock": stock,
                }],
            }, format="json")

        response = edit_stock(0)
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        product.refresh_from_db()
        self.assertFalse(product.is_active)
        movement = StockMovement.objects.get(variant=variant)
        self.assertEqual((movement.previous_stock, movement.new_stock, movement.quantity), (4, 0, -4))
        self.assertEqual(movement.reason, "Product edit")

        edit_stock(6)
        product.refresh_from_db()
        self.assertTrue(product.is_active)
        self.assertEqual(StockMovement.objects.filter(variant=variant).count(), 2)

    def test_ordered_product_cannot_be_deleted(self):
        item = factories.OrderItemFactory(variant__product__vendor=self.user)
        response = self.client.delete(reverse("product-detail", args=[item.product_id]))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Product.objects.filter(pk=item.product_id).exists())

    def test_bulk_delete_skips_ordered(self):
        ordered = factories.OrderItemFactory(variant__product__vendor=self.user).product
        free = factories.ProductFactory(vendor=self.user)
        response = self.client.post(reverse("product-bulk-delete"), {
            "product_ids": [ordered.id, free.id],
        }, format="json")
        self.assertEqual(response.data["deleted"], [free.id])
        self.assertEqual(response.data["skipped"][0]["product_id"], ordered.id)


class ProductApprovalTests(AuthenticatedUserTestBase):
    ROLE = "admin"

    def test_admin_created_product_is_approved(self):
        category = factories.CategoryFactory()
        response = self.client.post(reverse("product-list"), product_payload(category), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["approval_status"], ApprovalStatus.APPROVED)

    def test_approve(self):
        product = factories.ProductFactory(approval_status=ApprovalStatus.PENDING)
        response = self.client.post(reverse("product-approve", args=[product.id]), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.approval_status, ApprovalStatus.APPROVED)
        self.assertEqual(product.reviewed_by, self.user)
        self.assertTrue(Notification.objects.filter(user=product.vendor).exists())

    def test_reject_requires_comments(self):
        product = factories.ProductFactory(approval_status=ApprovalStatus.PENDING)
        response = self.client.post(reverse("product-reject", args=[product.id]), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(
            reverse("product-request-changes", args=[product.id]), {"comments": "Add photos"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.approval_status, ApprovalStatus.NEEDS_CHANGES)
        self.assertEqual(product.review_comments, "Add photos")

    def test_review_queue_lists_pending_only(self):
        pending = factories.ProductFactory(approval_status=ApprovalStatus.PENDING)
        factories.ProductFactory()
        response = self.client.get(reverse("product-review-queue"))
        self.assertEqual([p["id"] for p in response.data["results"]], [pending.id])

    def test_bulk_status_reports_failures(self):
        products = [factories.ProductFactory(approval_status=ApprovalStatus.PENDING) for _ in range(2)]
        response = self.client.post(reverse("product-bulk-status"), {
            "product_ids": [p.id for p in products],
            "approval_status": ApprovalStatus.APPROVED,
        }, format="json")
        self.assertEqual(response.data["updated_count"], 2)

        response = self.client.post(reverse("product-bulk-status"), {
            "product_ids": [p.id for p in products],
            "approval_status": ApprovalStatus.REJECTED,
        }, format="json")
        self.assertEqual(response.data["updated_count"], 0)
        self.assertEqual(len(response.data["failed"]), 2)


class StorefrontTests(AuthenticatedUserTestBase):
    def test_only_visible_products_listed(self):
        visible = factories.ProductFactory()
        factories.ProductFactory(approval_status=ApprovalStatus.PENDING)
        factories.ProductFactory(is_active=False)
        response = self.client.get(reverse("product-list"))
        self.assertEqual([p["id"] for p in response.data["results"]], [visible.id])

    def test_category_filter_includes_descendants(self):
        leaf = factories.SubSubCategoryFactory()
        sub = leaf.parent_category
        root = sub.parent_category
        inside = factories.ProductFactory(category=root, sub_category=sub, sub_sub_category=leaf)
        factories.ProductFactory()

        response = self.client.get(reverse("product-list"), {"category": root.slug})
        self.assertEqual([p["id"] for p in response.data["results"]], [inside.id])

    def test_brand_and_price_filters(self):
        cheap = factories.ProductFactory(brand="Puma", price=Decimal("300.00"))
        factories.ProductFactory(brand="Nike", price=Decimal("300.00"))
        factories.ProductFactory(brand="Puma", price=Decimal("3000.00"))
        response = self.client.get(reverse("product-list"), {"brand": "puma,adidas", "max_price": 500})
        self.assertEqual([p["id"] for p in response.data["results"]], [cheap.id])

    def test_retrieve_counts_views(self):
        product = factories.ProductFactory()
        self.client.get(reverse("product-detail", args=[product.id]))
        response = self.client.get(reverse("product-detail", args=[product.id]))
        self.assertEqual(response.data["view_count"], 2)

    def test_customer_cannot_create(self):
        response = self.client.post(
            reverse("product-list"), product_payload(factories.CategoryFactory()), format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
