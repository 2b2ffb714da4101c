import logging
from datetime import datetime, time, timedelta
from decimal import Decimal

from django.db.models import Count, DecimalField, ExpressionWrapper, F, Max, Q, Sum
from django.db.models.functions import Coalesce, TruncDate, TruncDay, TruncMonth, TruncWeek, TruncYear
from django.utils import timezone

from orders.enums import OrderItemStatus, OrderStatus
from orders.models import Order, OrderItem
from products.enums import ApprovalStatus
from products.models import Product
from users.enums import UserRole
from users.models import User

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

TREND_PERIODS = {
    "daily": (TruncDay, "%Y-%m-%d"),
    "weekly": (TruncWeek, "%Y-%m-%d"),
    "monthly": (TruncMonth, "%Y-%m"),
    "yearly": (TruncYear, "%Y"),
}

VIP_SPEND = Decimal("10000")
VIP_ORDERS = 10
AT_RISK_DAYS = 90
CHURNED_DAYS = 180

MONEY = DecimalField(max_digits=14, decimal_places=2)
LINE_TOTAL = ExpressionWrapper(F("price") * F("quantity"), output_field=MONEY)


def _money(value):
    return (value or ZERO).quantize(Decimal("0.01"))


def get_percentage_change(current, previous):
    if not previous:
        return 0.0
    return round(float((current - previous) / previous * 100), 2)


def parse_date_range(start=None, end=None, default_days=30):
    """Resolve ``YYYY-MM-DD`` query strings to an aware [start, end] datetime pair."""
    tz = timezone.get_current_timezone()
    now = timezone.now()

    if end:
        end_dt = timezone.make_aware(datetime.combine(datetime.strptime(end, "%Y-%m-%d").date(), time.max), tz)
    else:
        end_dt = now
    if start:
        start_dt = timezone.make_aware(datetime.combine(datetime.strptime(start, "%Y-%m-%d").date(), time.min), tz)
    else:
        start_dt = end_dt - timedelta(days=default_days)

    if start_dt > end_dt:
        raise ValueError("start_date must be before end_date")
    return start_dt, end_dt


def revenue_orders(start=None, end=None, include_end=True):
    qs = Order.objects.exclude(order_status=OrderStatus.CANCELLED)
    if start is not None:
        qs = qs.filter(created_at__gte=start)
    if end is not None:
        qs = qs.filter(created_at__lte=end) if include_end else qs.filter(created_at__lt=end)
    return qs


def _period_metrics(start, end, include_end=True):
    totals = revenue_orders(start, end, include_end).aggregate(
        revenue=Coalesce(Sum("final_amount"), ZERO, output_field=MONEY),
        orders=Count("id"),
        customers=Count("customer", distinct=True),
    )
    revenue = totals["revenue"]
    orders = totals["orders"]
    return {
        "total_revenue": _money(revenue),
        "total_orders": orders,
        "total_customers": totals["customers"],
        "average_order_value": _money(revenue / orders) if orders else ZERO,
    }


# -------- Admin analytics --------

def get_overview(start, end):
    current = _period_metrics(start, end)
    previous = _period_metrics(start - (end - start), start, include_end=False)
    current["growth_rate"] = get_percentage_change(current["total_revenue"], previous["total_revenue"])
    current["previous_revenue"] = previous["total_revenue"]
    return current


def get_sales_trends(start, end, period="daily"):
    if period not in TREND_PERIODS:
        raise ValueError(f"Invalid period. Use one of: {', '.join(TREND_PERIODS)}")
    trunc, fmt = TREND_PERIODS[period]

    rows = (
        revenue_orders(start, end)
        .annotate(bucket=trunc("created_at"))
        .values("bucket")
        .annotate(
            revenue=Coalesce(Sum("final_amount"), ZERO, output_field=MONEY),
            orders=Count("id"),
            customers=Count("customer", distinct=True),
        )
        .order_by("bucket")
    )
    return [
        {
            "date": row["bucket"].strftime(fmt),
            "revenue": _money(row["revenue"]),
            "orders": row["orders"],
            "customers": row["customers"],
        }
        for row in rows
    ]


def _revenue_items(start, end):
    return OrderItem.objects.filter(
        order__created_at__gte=start,
        order__created_at__lte=end,
    ).exclude(order__order_status=OrderStatus.CANCELLED)


def get_top_products(start, end, limit=10):
    rows = (
        _revenue_items(start, end)
        .values("product_id", "product__name")
        .annotate(
            revenue=Coalesce(Sum(LINE_TOTAL), ZERO, output_field=MONEY),
            orders=Count("order", distinct=True),
            quantity=Sum("quantity"),
        )
        .order_by("-revenue", "product_id")[:limit]
    )
    return [
        {
            "product_id": row["product_id"],
            "product_name": row["product__name"],
            "revenue": _money(row["revenue"]),
            "orders": row["orders"],
            "quantity": row["quantity"],
        }
        for row in rows
    ]


def get_revenue_by_category(start, end):
    rows = (
        _revenue_items(start, end)
        .values("product__category_id", "product__category__name")
        .annotate(
            revenue=Coalesce(Sum(LINE_TOTAL), ZERO, output_field=MONEY),
            quantity=Sum("quantity"),
            orders=Count("order", distinct=True),
        )
        .order_by("-revenue")
    )
    return [
        {
            "category_id": row["product__category_id"],
            "category_name": row["product__category__name"] or "Uncategorized",
            "revenue": _money(row["revenue"]),
            "quantity": row["quantity"],
            "orders": row["orders"],
        }
        for row in rows
    ]


def get_revenue_by_payment_method(start, end):
    rows = (
        revenue_orders(start, end)
        .values("payment_method")
        .annotate(
            revenue=Coalesce(Sum("final_amount"), ZERO, output_field=MONEY),
            orders=Count("id"),
        )
        .order_by("-revenue")
    )
    return [
        {"payment_method": row["payment_method"], "revenue": _money(row["revenue"]), "orders": row["orders"]}
        for row in rows
    ]


def get_order_status_breakdown(start, end):
    counts = dict(
        Order.objects.filter(created_at__gte=start, created_at__lte=end)
        .order_by()
        .values_list("order_status")
        .annotate(count=Count("id"))
    )
    total = sum(counts.values())
    return [
        {
            "status": choice.value,
            "label": choice.label,
            "count": counts.get(choice.value, 0),
            "percentage": round(counts.get(choice.value, 0) / total * 100, 2) if total else 0.0,
        }
        for choice in OrderStatus
    ]


def classify_customer(total_spent, total_orders, days_since_last_order):
    if days_since_last_order > CHURNED_DAYS:
        return "churned"
    if days_since_last_order > AT_RISK_DAYS:
        return "at_risk"
    if total_spent > VIP_SPEND or total_orders > VIP_ORDERS:
        return "vip"
    if total_orders > 1:
        return "regular"
    return "new"


def get_customer_segments(now=None):
    now = now or timezone.now()
    customers = (
        revenue_orders()
        .values("customer")
        .annotate(
            spent=Coalesce(Sum("final_amount"), ZERO, output_field=MONEY),
            orders=Count("id"),
            last_order=Max("created_at"),
        )
    )

    segments = {name: {"count": 0, "value": ZERO} for name in ("new", "regular", "vip", "at_risk", "churned")}
    for row in customers:
        name = classify_customer(row["spent"], row["orders"], (now - row["last_order"]).days)
        segments[name]["count"] += 1
        segments[name]["value"] += row["spent"]

    total = sum(s["count"] for s in segments.values())
    return [
        {
            "segment": name,
            "count": data["count"],
            "percentage": round(data["count"] / total * 100) if total else 0,
            "average_value": _money(data["value"] / data["count"]) if data["count"] else ZERO,
        }
        for name, data in segments.items()
    ]


def get_dashboard_analytics(start, end, period="daily"):
    logger.info("Building dashboard analytics %s -> %s (%s)", start.date(), end.date(), period)
    return {
        "overview": get_overview(start, end),
        "sales_trends": get_sales_trends(start, end, period),
        "top_products": get_top_products(start, end),
        "revenue_by_category": get_revenue_by_category(start, end),
        "revenue_by_payment_method": get_revenue_by_payment_method(start, end),
        "order_status_breakdown": get_order_status_breakdown(start, end),
        "customer_segments": get_customer_segments(),
    }


# -------- Vendor analytics --------

def _vendor_sales(vendor):
    return OrderItem.objects.filter(seller=vendor).exclude(status=OrderItemStatus.CANCELLED)


def _vendor_earnings(vendor, start, end=None):
    qs = _vendor_sales(vendor).filter(order__created_at__gte=start)
    if end is not None:
        qs = qs.filter(order__created_at__lt=end)
    return qs.aggregate(total=Coalesce(Sum(LINE_TOTAL), ZERO, output_field=MONEY))["total"]


def get_vendor_dashboard(vendor, now=None):
    now = now or timezone.now()
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    prev_month_start = (start_of_month - timedelta(days=1)).replace(day=1)

    products = Product.objects.filter(vendor=vendor)
    total_products = products.count()
    prev_products = products.filter(created_at__lt=start_of_month).count()

    month_items = _vendor_sales(vendor).filter(order__created_at__gte=start_of_month)
    prev_items = _vendor_sales(vendor).filter(
        order__created_at__gte=prev_month_start, order__created_at__lt=start_of_month
    )
    sold_this_month = month_items.aggregate(total=Coalesce(Sum("quantity"), 0))["total"]
    sold_last_month = prev_items.aggregate(total=Coalesce(Sum("quantity"), 0))["total"]

    earnings = _vendor_earnings(vendor, start_of_month)
    prev_earnings = _vendor_earnings(vendor, prev_month_start, start_of_month)

    pending_orders = (
        Order.objects.filter(
            items__seller=vendor,
            order_status__in=[OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING],
        )
        .distinct()
        .count()
    )

    return {
        "total_products": {
            "count": total_products,
            "change": get_percentage_change(total_products, prev_products),
        },
        "pending_approvals": products.filter(approval_status=ApprovalStatus.PENDING).count(),
        "sales_this_month": {
            "count": sold_this_month,
            "change": get_percentage_change(sold_this_month, sold_last_month),
        },
        "earnings_this_month": {
            "amount": _money(earnings),
            "previous": _money(prev_earnings),
            "change": get_percentage_change(earnings, prev_earnings),
        },
        "pending_orders": pending_orders,
    }


def get_vendor_sales_overview(vendor, period="7days", now=None):
    now = now or timezone.now()
    today = timezone.localdate(now)
    items = _vendor_sales(vendor)

    if period in ("7days", "30days"):
        days = 7 if period == "7days" else 30
        label = "%a" if days == 7 else "%d %b"
        start = today - timedelta(days=days - 1)
        rows = (
            items.filter(order__created_at__date__gte=start, order__created_at__date__lte=today)
            .annotate(day=TruncDate("order__created_at"))
            .values("day")
            .annotate(total=Coalesce(Sum(LINE_TOTAL), ZERO, output_field=MONEY))
        )
        totals = {row["day"]: row["total"] for row in rows}
        return [
            {"date": d.strftime(label), "value": float(totals.get(d, ZERO))}
            for d in (start + timedelta(days=i) for i in range(days))
        ]

    if period == "year":
        rows = (
            items.filter(order__created_at__year=today.year)
            .values("order__created_at__month")
            .annotate(total=Coalesce(Sum(LINE_TOTAL), ZERO, output_field=MONEY))
        )
        totals = {row["order__created_at__month"]: row["total"] for row in rows}
        return [
            {"date": today.replace(month=m, day=1).strftime("%b"), "value": float(totals.get(m, ZERO))}
            for m in range(1, today.month + 1)
        ]

    raise ValueError("Invalid period. Use 7days, 30days or year.")


def get_latest_orders(user=None, limit=5):
    qs = Order.objects.select_related("customer").order_by("-created_at")
    if user is not None:
        qs = qs.filter(items__seller=user).distinct()
    return qs[:limit]


def get_admin_summary(now=None):
    """Headline counters for the admin landing page, month over month."""
    now = now or timezone.now()
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    prev_month_start = (start_of_month - timedelta(days=1)).replace(day=1)

    current = _period_metrics(start_of_month, now)
    previous = _period_metrics(prev_month_start, start_of_month, include_end=False)

    pending = Q(approval_status=ApprovalStatus.PENDING)
    return {
        "total_revenue": {
            "value": current["total_revenue"],
            "change": get_percentage_change(current["total_revenue"], previous["total_revenue"]),
        },
        "total_orders": {
            "value": current["total_orders"],
            "change": get_percentage_change(current["total_orders"], previous["total_orders"]),
        },
        "total_customers": {
            "value": current["total_customers"],
            "change": get_percentage_change(current["total_customers"], previous["total_customers"]),
        },
        "pending_approvals": Product.objects.filter(pending).count(),
        "pending_returns": Order.objects.filter(order_status=OrderStatus.RETURN_REQUESTED).count(),
    }


def get_vendor_performance(limit=None):
    sales = Q(sold_order_items__status__in=[s for s in OrderItemStatus if s != OrderItemStatus.CANCELLED])
    vendors = (
        User.objects.filter(role=UserRole.VENDOR.value)
        .annotate(
            products_sold=Coalesce(Sum("sold_order_items__quantity", filter=sales), 0),
            revenue=Coalesce(
                Sum(
                    F("sold_order_items__price") * F("sold_order_items__quantity"),
                    filter=sales,
                    output_field=MONEY,
                ),
                ZERO,
                output_field=MONEY,
            ),
        )
        .order_by("-revenue", "email")
    )
    if limit:
        vendors = vendors[:limit]
    return [
        {
            "id": v.pk,
            "email": v.email,
            "name": v.get_full_name() or v.email,
            "products_sold": v.products_sold,
            "revenue": _money(v.revenue),
            "status": "Active" if v.is_active else "Inactive",
        }
        for v in vendors
    ]
