from datetime import datetime, timedelta
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from dashboard import utils as analytics
from main import factories
from main.test import AuthenticatedUserTestBase
from orders.enums import OrderItemStatus, OrderStatus, PaymentMethod
from orders.models import Order
from products.enums import ApprovalStatus


def at(year, month, day, hour=12):
    return timezone.make_aware(datetime(year, month, day, hour))


def backdate(instance, when):
    type(instance).objects.filter(pk=instance.pk).update(created_at=when)
    instance.refresh_from_db()
    return instance


class AdminAnalyticsTests(TestCase):
    def test_percentage_change(self):
        self.assertEqual(analytics.get_percentage_change(150, 100), 50.0)
        self.assertEqual(analytics.get_percentage_change(10, 0), 0.0)

    def test_parse_date_range(self):
        start, end = analytics.parse_date_range("2026-03-01", "2026-03-31")
        self.assertEqual((start.date().isoformat(), end.date().isoformat()), ("2026-03-01", "2026-03-31"))
        with self.assertRaises(ValueError):
            analytics.parse_date_range("2026-04-01", "2026-03-01")

    def test_overview_growth_against_previous_period(self):
        now = timezone.now()
        backdate(factories.OrderFactory(), now - timedelta(days=2))
        backdate(factories.OrderFactory(final_amount=Decimal("500.00")), now - timedelta(days=15))
        backdate(factories.OrderFactory(order_status=OrderStatus.CANCELLED), now - timedelta(days=1))

        overview = analytics.get_overview(now - timedelta(days=10), now)

        self.assertEqual(overview["total_revenue"], Decimal("1020.00"))
        self.assertEqual(overview["total_orders"], 1)
        self.assertEqual(overview["average_order_value"], Decimal("1020.00"))
        self.assertEqual(overview["previous_revenue"], Decimal("500.00"))
        self.assertEqual(overview["growth_rate"], 104.0)

    def test_order_on_period_boundary_counts_once(self):
        start, end = at(2026, 3, 11, 0), at(2026, 3, 21, 0)
        backdate(factories.OrderFactory(), start)
        backdate(factories.OrderFactory(final_amount=Decimal("500.00")), at(2026, 3, 5))

        overview = analytics.get_overview(start, end)

        self.assertEqual(overview["total_revenue"], Decimal("1020.00"))
        self.assertEqual(overview["previous_revenue"], Decimal("500.00"))
        self.assertEqual(overview["growth_rate"], 104.0)

    def test_sales_trends(self):
        backdate(factories.OrderFactory(), at(2026, 3, 5, 10))
        backdate(factories.OrderFactory(), at(2026, 3, 5, 14))
        backdate(factories.OrderFactory(), at(2026, 3, 20))
        start, end = at(2026, 3, 1, 0), at(2026, 3, 31, 23)

        daily = analytics.get_sales_trends(start, end, "daily")
        self.assertEqual(
            [(row["date"], row["orders"], row["revenue"]) for row in daily],
            [("2026-03-05", 2, Decimal("2040.00")), ("2026-03-20", 1, Decimal("1020.00"))],
        )
        monthly = analytics.get_sales_trends(start, end, "monthly")
        self.assertEqual([(row["date"], row["orders"]) for row in monthly], [("2026-03", 3)])

        with self.assertRaises(ValueError):
            analytics.get_sales_trends(start, end, "hourly")

    def test_top_products_and_categories(self):
        best = factories.OrderItemFactory(quantity=3)
        factories.OrderItemFactory(quantity=1)
        factories.OrderItemFactory(quantity=5, order__order_status=OrderStatus.CANCELLED)
        start, end = analytics.parse_date_range()

        top = analytics.get_top_products(start, end, limit=5)
        self.assertEqual(len(top), 2)
        self.assertEqual(top[0]["product_id"], best.product_id)
        self.assertEqual((top[0]["revenue"], top[0]["quantity"]), (Decimal("1500.00"), 3))

        by_category = analytics.get_revenue_by_category(start, end)
        self.assertEqual(by_category[0]["category_name"], best.product.category.name)

    def test_revenue_by_payment_method(self):
        factories.OrderFactory(payment_method=PaymentMethod.STRIPE)
        factories.OrderFactory(payment_method=PaymentMethod.STRIPE)
        factories.OrderFactory(payment_method=PaymentMethod.COD, final_amount=Decimal("300.00"))
        start, end = analytics.parse_date_range()
        rows = analytics.get_revenue_by_payment_method(start, end)
        self.assertEqual(
            [(r["payment_method"], r["revenue"], r["orders"]) for r in rows],
            [(PaymentMethod.STRIPE, Decimal("2040.00"), 2), (PaymentMethod.COD, Decimal("300.00"), 1)],
        )

    def test_order_status_breakdown(self):
        factories.OrderFactory()
        factories.OrderFactory()
        factories.OrderFactory(order_status=OrderStatus.CANCELLED)
        start, end = analytics.parse_date_range()

        breakdown = {row["status"]: row for row in analytics.get_order_status_breakdown(start, end)}

        self.assertEqual(breakdown[OrderStatus.PENDING]["count"], 2)
        self.assertEqual(breakdown[OrderStatus.PENDING]["percentage"], 66.67)
        self.assertEqual(breakdown[OrderStatus.CANCELLED]["percentage"], 33.33)
        self.assertEqual(breakdown[OrderStatus.DELIVERED]["count"], 0)

    def test_classify_customer(self):
        self.assertEqual(analytics.classify_customer(Decimal("100"), 1, 200), "churned")
        self.assertEqual(analytics.classify_customer(Decimal("50000"), 20, 95), "at_risk")
        self.assertEqual(analytics.classify_customer(Decimal("10001"), 1, 3), "vip")
        self.assertEqual(analytics.classify_customer(Decimal("100"), 11, 3), "vip")
        self.assertEqual(analytics.classify_customer(Decimal("100"), 2, 3), "regular")
        self.assertEqual(analytics.classify_customer(Decimal("100"), 1, 3), "new")

    def test_customer_segments(self):
        now = timezone.now()
        factories.OrderFactory()
        regular = factories.CustomerFactory()
        factories.OrderFactory(customer=regular)
        factories.OrderFactory(customer=regular)
        factories.OrderFactory(final_amount=Decimal("12000.00"))
        backdate(factories.OrderFactory(), now - timedelta(days=100))

        segments = {row["segment"]: row for row in analytics.get_customer_segments(now=now)}

        self.assertEqual(
            {name: row["count"] for name, row in segments.items()},
            {"new": 1, "regular": 1, "vip": 1, "at_risk": 1, "churned": 0},
        )
        self.assertEqual(segments["regular"]["average_value"], Decimal("2040.00"))
        self.assertEqual(segments["vip"]["percentage"], 25)

    def test_vendor_performance(self):
        top = factories.OrderItemFactory(quantity=4)
        other = factories.OrderItemFactory(quantity=1)
        factories.OrderItemFactory(variant__product__vendor=other.seller, quantity=6, status=OrderItemStatus.CANCELLED)

        rows = analytics.get_vendor_performance()

        self.assertEqual([r["id"] for r in rows[:2]], [top.seller_id, other.seller_id])
        self.assertEqual((rows[0]["products_sold"], rows[0]["revenue"]), (4, Decimal("2000.00")))
        self.assertEqual((rows[1]["products_sold"], rows[1]["revenue"]), (1, Decimal("500.00")))


class VendorAnalyticsTests(TestCase):
    def setUp(self):
        self.now = at(2026, 6, 15)
        self.vendor = factories.VendorFactory()
        self.old = backdate(factories.ProductFactory(vendor=self.vendor), at(2026, 5, 10))
        backdate(factories.ProductFactory(vendor=self.vendor), at(2026, 6, 5))
        backdate(
            factories.ProductFactory(vendor=self.vendor, approval_status=ApprovalStatus.PENDING), at(2026, 6, 6)
        )

        june = factories.OrderItemFactory(variant__product=self.old, quantity=2)
        backdate(june.order, at(2026, 6, 10))
        may = factories.OrderItemFactory(variant__product=self.old, quantity=1)
        backdate(may.order, at(2026, 5, 20))
        cancelled = factories.OrderItemFactory(
            variant__product=self.old, quantity=3, status=OrderItemStatus.CANCELLED,
            order__order_status=OrderStatus.CANCELLED,
        )
        backdate(cancelled.order, at(2026, 6, 11))

    def test_vendor_dashboard(self):
        data = analytics.get_vendor_dashboard(self.vendor, now=self.now)

        self.assertEqual(data["total_products"], {"count": 3, "change": 200.0})
        self.assertEqual(data["pending_approvals"], 1)
        self.assertEqual(data["sales_this_month"], {"count": 2, "change": 100.0})
        self.assertEqual(data["earnings_this_month"]["amount"], Decimal("1000.00"))
        self.assertEqual(data["earnings_this_month"]["previous"], Decimal("500.00"))
        self.assertEqual(data["earnings_this_month"]["change"], 100.0)
        self.assertEqual(data["pending_orders"], 2)

    def test_sales_overview_last_7_days(self):
        overview = analytics.get_vendor_sales_overview(self.vendor, "7days", now=self.now)
        self.assertEqual(len(overview), 7)
        self.assertEqual(overview[1], {"date": "Wed", "value": 1000.0})
        self.assertEqual(sum(day["value"] for day in overview), 1000.0)

    def test_sales_overview_year(self):
        overview = analytics.get_vendor_sales_overview(self.vendor, "year", now=self.now)
        self.assertEqual([m["date"] for m in overview], ["Jan", "Feb", "Mar", "Apr", "May", "Jun"])
        self.assertEqual((overview[4]["value"], overview[5]["value"]), (500.0, 1000.0))

    def test_sales_overview_rejects_unknown_period(self):
        with self.assertRaises(ValueError):
            analytics.get_vendor_sales_overview(self.vendor, "decade", now=self.now)

    def test_latest_orders_scoped_to_vendor(self):
        factories.OrderItemFactory()
        orders = analytics.get_latest_orders(self.vendor, limit=10)
        self.assertEqual(len(orders), 3)
        self.assertEqual(
            {o.pk for o in orders}, set(Order.objects.filter(items__seller=self.vendor).values_list("pk", flat=True))
        )


class AdminDashboardApiTests(AuthenticatedUserTestBase):
    ROLE = "admin"

    def test_stats(self):
        factories.OrderFactory()
        factories.ProductFactory(approval_status=ApprovalStatus.PENDING)
        response = self.client.get(reverse("dashboard-stats"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total_orders"]["value"], 1)
        self.assertEqual(response.data["pending_approvals"], 1)

    def test_full_analytics(self):
        factories.OrderItemFactory()
        response = self.client.get(reverse("analytics-dashboard"), {"period": "weekly"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["overview"]["total_orders"], 1)
        self.assertEqual(len(response.data["top_products"]), 1)
        self.assertIn("date_range", response.data)

    def test_bad_date_range(self):
        response = self.client.get(
            reverse("analytics-overview"), {"start_date": "2026-05-01", "end_date": "2026-04-01"}
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_bad_period(self):
        response = self.client.get(reverse("analytics-sales-trends"), {"period": "hourly"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_low_stock_alerts_cover_every_vendor(self):
        factories.ProductVariantFactory(stock=1)
        factories.ProductVariantFactory(stock=2)
        response = self.client.get(reverse("low-stock-alerts"))
        self.assertEqual(response.data["count"], 2)

    def test_vendor_performance_limit(self):
        response = self.client.get(reverse("vendor-performance"), {"limit": "abc"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class VendorDashboardApiTests(AuthenticatedUserTestBase):
    ROLE = "vendor"

    def test_dashboard(self):
        factories.ProductFactory(vendor=self.user)
        response = self.client.get(reverse("vendor-dashboard"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total_products"]["count"], 1)

    def test_sales_overview_period_validation(self):
        response = self.client.get(reverse("vendor-sales-overview"), {"period": "30days"})
        self.assertEqual(len(response.data["sales_overview"]), 30)
        response = self.client.get(reverse("vendor-sales-overview"), {"period": "decade"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_latest_orders_only_own(self):
        mine = factories.OrderItemFactory(variant__product__vendor=self.user).order
        factories.OrderItemFactory()
        response = self.client.get(reverse("vendor-latest-orders"))
        self.assertEqual([o["order_number"] for o in response.data], [mine.order_number])

    def test_admin_endpoints_forbidden(self):
        response = self.client.get(reverse("dashboard-stats"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_customer_forbidden(self):
        self.authenticate(factories.CustomerFactory())
        self.assertEqual(self.client.get(reverse("vendor-dashboard")).status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.get(reverse("latest-orders")).status_code, status.HTTP_403_FORBIDDEN)
