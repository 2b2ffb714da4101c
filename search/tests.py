from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from main import factories
from products.enums import ApprovalStatus
from search import utils as search_utils


class SpellingTests(TestCase):
    def test_levenshtein_distance(self):
        self.assertEqual(search_utils.levenshtein_distance("kitten", "sitting"), 3)
        self.assertEqual(search_utils.levenshtein_distance("", "abc"), 3)
        self.assertEqual(search_utils.levenshtein_distance("jeans", "jeans"), 0)
        self.assertEqual(search_utils.levenshtein_distance("shrit", "shirt"), 2)

    def test_did_you_mean(self):
        self.assertEqual(search_utils.did_you_mean("Jeens"), "jeans")
        self.assertEqual(search_utils.did_you_mean("shirt"), None)
        self.assertIsNone(search_utils.did_you_mean("refrigerator"))
        self.assertIsNone(search_utils.did_you_mean("  "))

    def test_related_searches(self):
        self.assertEqual(search_utils.related_searches("kurta", limit=2), ["kurta for men", "kurta for women"])
        self.assertEqual(search_utils.related_searches(""), [])


class SearchUtilsTests(TestCase):
    def setUp(self):
        self.root = factories.CategoryFactory(name="Men")
        self.leaf = factories.SubSubCategoryFactory(parent_category__parent_category=self.root)
        self.denim = factories.ProductFactory(
            name="Slim Denim Jeans", description="Stretch fit", brand="Levis", price=Decimal("1500.00"),
            category=self.root, sub_category=self.leaf.parent_category, sub_sub_category=self.leaf,
        )
        factories.ProductVariantFactory(product=self.denim, price=Decimal("1500.00"), original_price=Decimal("2000.00"))
        self.tagged = factories.ProductFactory(
            name="Weekend Wear", description="Relaxed", brand="Roadster", tags=["denim"], price=Decimal("700.00"),
        )
        factories.ProductVariantFactory(product=self.tagged, price=Decimal("700.00"), stock=0)
        factories.ProductFactory(
            name="Denim Jacket", description="Pending", brand="Levis", approval_status=ApprovalStatus.PENDING,
        )

    def test_text_and_tag_match(self):
        result = search_utils.enhanced_search(q="denim")
        self.assertCountEqual([p.id for p in result["products"]], [self.denim.id, self.tagged.id])
        self.assertEqual(result["pagination"], {"page": 1, "limit": 20, "total": 2, "pages": 1})
        self.assertEqual(result["search_meta"]["result_count"], 2)

    def test_tag_match_runs_in_the_search_query(self):
        with self.assertNumQueries(1):
            ids = [p.id for p in search_utils.build_search_queryset(q="DENIM")]
        self.assertCountEqual(ids, [self.denim.id, self.tagged.id])

    def test_filters(self):
        result = search_utils.enhanced_search(q="denim", in_stock=True)
        self.assertEqual([p.id for p in result["products"]], [self.denim.id])

        result = search_utils.enhanced_search(brand=["roadster"], max_price=Decimal("1000"))
        self.assertEqual([p.id for p in result["products"]], [self.tagged.id])

        result = search_utils.enhanced_search(category=self.root.slug)
        self.assertEqual([p.id for p in result["products"]], [self.denim.id])

    def test_sort_and_pagination(self):
        result = search_utils.enhanced_search(q="denim", sort_by="price_low", limit=1, page=2)
        self.assertEqual([p.id for p in result["products"]], [self.denim.id])
        self.assertEqual(result["pagination"]["pages"], 2)

    def test_aggregations(self):
        result = search_utils.enhanced_search(q="denim", include_aggregations=True)
        facets = result["filters"]
        self.assertEqual({b["name"] for b in facets["brands"]}, {"Levis", "Roadster"})
        self.assertEqual(facets["categories"][0]["id"], self.leaf.id)
        self.assertEqual(
            [(r["range"], r["count"]) for r in facets["price_ranges"]],
            [("500-1000", 1), ("1000-2000", 1)],
        )

    def test_autocomplete(self):
        self.assertEqual(search_utils.autocomplete("d")["suggestions"], [])
        result = search_utils.autocomplete("lev")
        types = [s["type"] for s in result["suggestions"]]
        self.assertIn("product", types)
        self.assertIn({"id": "Levis", "text": "Levis", "type": "brand"}, result["suggestions"])
        self.assertEqual(result["popular_searches"], search_utils.POPULAR_SEARCHES)


class SearchApiTests(APITestCase):
    def setUp(self):
        self.product = factories.ProductFactory(name="Linen Shirt", description="Summer", brand="Fabindia")
        factories.ProductVariantFactory(product=self.product)

    def test_search_endpoint(self):
        response = self.client.get(reverse("search"), {"q": "linen", "brand": "fabindia,puma"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p["id"] for p in response.data["products"]], [self.product.id])
        self.assertEqual(response.data["search_meta"]["query"], "linen")

    def test_invalid_price_range(self):
        response = self.client.get(reverse("search"), {"min_price": 900, "max_price": 100})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_misspelling_suggestion(self):
        response = self.client.get(reverse("search"), {"q": "shrit"})
        self.assertEqual(response.data["search_meta"]["did_you_mean"], "shirt")

    def test_autocomplete_and_trending(self):
        response = self.client.get(reverse("search-autocomplete"), {"q": "lin"})
        self.assertEqual(response.data["suggestions"][0]["text"], "Linen Shirt")

        response = self.client.get(reverse("search-trending"))
        self.assertEqual(response.data["searches"], search_utils.TRENDING_SEARCHES)
