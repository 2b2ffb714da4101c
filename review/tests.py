from django.urls import reverse
from rest_framework import status

from main import factories
from main.test import AuthenticatedUserTestBase
from orders.enums import OrderItemStatus
from review.models import Review


class ReviewTests(AuthenticatedUserTestBase):
    def setUp(self):
        super().setUp()
        self.product = factories.ProductFactory()

    def post_review(self, **overrides):
        data = {"product_id": self.product.id, "rating": 4, "comment": "Fits well"}
        data.update(overrides)
        return self.client.post(reverse("review-list"), data, format="json")

    def test_create_marks_verified_purchase(self):
        factories.OrderItemFactory(
            order__customer=self.user, variant__product=self.product, status=OrderItemStatus.DELIVERED,
        )
        response = self.post_review()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertTrue(response.data["is_verified_purchase"])
        self.assertEqual(response.data["product"]["id"], self.product.id)

    def test_unverified_review(self):
        response = self.post_review()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data["is_verified_purchase"])

    def test_one_review_per_product(self):
        self.post_review()
        response = self.post_review(rating=1)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Review.objects.count(), 1)

    def test_rating_bounds(self):
        response = self.post_review(rating=6)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("rating", response.data)

    def test_hidden_product_rejected(self):
        hidden = factories.ProductFactory(is_active=False)
        response = self.post_review(product_id=hidden.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_vendor_cannot_review(self):
        self.authenticate(factories.VendorFactory())
        response = self.post_review()
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cannot_delete_someone_elses_review(self):
        review = factories.ReviewFactory(product=self.product)
        response = self.client.delete(reverse("review-detail", args=[review.id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertTrue(Review.objects.filter(pk=review.pk).exists())

    def test_product_summary(self):
        for rating in (5, 4, 4):
            factories.ReviewFactory(product=self.product, rating=rating)
        self.logout()

        response = self.client.get(reverse("review-product-reviews", kwargs={"product_id": self.product.id}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["average_rating"], 4.3)
        self.assertEqual(response.data["review_count"], 3)
        self.assertEqual(response.data["distribution"], {"1": 0, "2": 0, "3": 0, "4": 2, "5": 1})
        self.assertEqual(len(response.data["reviews"]), 3)

    def test_vendor_sees_reviews_of_own_products(self):
        vendor = self.product.vendor
        factories.ReviewFactory(product=self.product)
        factories.ReviewFactory()
        self.authenticate(vendor)
        response = self.client.get(reverse("review-list"))
        self.assertEqual([r["product"]["id"] for r in response.data["results"]], [self.product.id])
