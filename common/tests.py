from django.core.exceptions import ValidationError
from django.test import TestCase
from django.urls import reverse
from rest_framework import status

from common.enums import CategoryLevel
from common.models import Category, Wishlist
from main import factories
from main.test import AuthenticatedUserTestBase


class CategoryModelTests(TestCase):
    def test_child_slug_is_prefixed_with_parent_slug(self):
        men = factories.CategoryFactory(name="Men")
        shirts = factories.SubCategoryFactory(name="Shirts", parent_category=men)
        self.assertEqual(shirts.slug, "men-shirts")

    def test_slug_collision_gets_suffix(self):
        factories.CategoryFactory(name="Kids")
        other = Category(name="Kids!", level=CategoryLevel.CATEGORY)
        other.save()
        self.assertEqual(other.slug, "kids-1")

    def test_hierarchy_rules(self):
        root = factories.CategoryFactory()
        with self.assertRaises(ValidationError):
            Category(name="Orphan", level=CategoryLevel.SUBCATEGORY).save()
        with self.assertRaises(ValidationError):
            Category(name="Too deep", level=CategoryLevel.SUB_SUBCATEGORY, parent_category=root).save()
        with self.assertRaises(ValidationError):
            Category(name="Root with parent", level=CategoryLevel.CATEGORY, parent_category=root).save()

    def test_path_and_descendants(self):
        leaf = factories.SubSubCategoryFactory()
        sub = leaf.parent_category
        root = sub.parent_category
        self.assertEqual([c.pk for c in leaf.get_path()], [root.pk, sub.pk, leaf.pk])
        self.assertCountEqual(root.descendant_ids(), [root.pk, sub.pk, leaf.pk])
        self.assertCountEqual(root.descendant_ids(include_self=False), [sub.pk, leaf.pk])

    def test_descendants_skip_inactive_branches(self):
        root = factories.CategoryFactory()
        factories.SubCategoryFactory(parent_category=root, is_active=False)
        self.assertEqual(root.descendant_ids(), [root.pk])


class CategoryApiTests(AuthenticatedUserTestBase):
    ROLE = "admin"

    def test_create_subcategory(self):
        root = factories.CategoryFactory(name="Women")
        response = self.client.post(reverse("category-list"), {
            "name": "Dresses", "level": CategoryLevel.SUBCATEGORY, "parent_category": root.id,
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["slug"], "women-dresses")
        self.assertEqual(response.data["parent_name"], "Women")

    def test_create_rejects_wrong_parent_level(self):
        leaf = factories.SubSubCategoryFactory()
        response = self.client.post(reverse("category-list"), {
            "name": "Nope", "level": CategoryLevel.SUBCATEGORY, "parent_category": leaf.id,
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("parent_category", response.data)

    def test_create_rejects_duplicate_name_under_parent(self):
        root = factories.CategoryFactory(name="Home")
        response = self.client.post(reverse("category-list"), {"name": "home", "level": 1}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("name", response.data)
        self.assertTrue(Category.objects.filter(pk=root.pk).exists())

    def test_delete_with_children_refused(self):
        sub = factories.SubCategoryFactory()
        response = self.client.delete(reverse("category-detail", args=[sub.parent_category_id]))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_tree_and_path(self):
        leaf = factories.SubSubCategoryFactory()
        self.logout()

        response = self.client.get(reverse("category-tree"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        root = response.data[0]
        self.assertEqual(root["children"][0]["children"][0]["id"], leaf.id)

        response = self.client.get(reverse("category-path", args=[leaf.id]))
        self.assertEqual([c["level"] for c in response.data], [1, 2, 3])

    def test_by_level(self):
        factories.SubCategoryFactory()
        response = self.client.get(reverse("category-by-level", kwargs={"level": 2}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual({c["level"] for c in response.data}, {2})

        response = self.client.get(reverse("category-by-level", kwargs={"level": 4}))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_cannot_create(self):
        self.authenticate(factories.CustomerFactory())
        response = self.client.post(reverse("category-list"), {"name": "X", "level": 1}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class WishlistTests(AuthenticatedUserTestBase):
    def test_add_list_and_remove(self):
        product = factories.ProductFactory()

        response = self.client.post(reverse("wishlist-list"), {"product_id": product.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.post(reverse("wishlist-list"), {"product_id": product.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Wishlist.objects.filter(user=self.user).count(), 1)

        response = self.client.get(reverse("wishlist-list"))
        self.assertEqual(response.data["count"], 1)

        response = self.client.delete(reverse("wishlist-remove-product", kwargs={"product_id": product.id}))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Wishlist.objects.filter(user=self.user).exists())

    def test_hidden_product_rejected(self):
        product = factories.ProductFactory(approval_status="pending")
        response = self.client.post(reverse("wishlist-list"), {"product_id": product.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_vendor_cannot_add(self):
        self.authenticate(factories.VendorFactory())
        product = factories.ProductFactory()
        response = self.client.post(reverse("wishlist-list"), {"product_id": product.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
