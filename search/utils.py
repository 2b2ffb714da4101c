# search/utils.py
import logging
import math
import time

from django.db.models import Q, Count, Sum, Avg, FloatField, IntegerField
from django.db.models.functions import Coalesce

from common.models import Category
from common.enums import CategoryLevel
from products.models import Product

logger = logging.getLogger(__name__)

TRENDING_SEARCHES = [
    "T-shirts", "Jeans", "Sneakers", "Dresses", "Jackets", "Accessories", "Shoes", "Bags",
]
POPULAR_SEARCHES = TRENDING_SEARCHES[:6]
COMMON_TERMS = ["shirt", "jeans", "dress", "shoes", "jacket", "bag", "watch"]
RELATED_SEARCH_TEMPLATES = ["{q} for men", "{q} for women", "{q} sale", "{q} online", "best {q}"]
PRICE_BOUNDARIES = [0, 500, 1000, 2000, 5000, 10000]

SORT_OPTIONS = {
    "relevance": ["-is_featured", "-sales_count", "-view_count", "-created_at"],
    "price_low": ["price", "-created_at"],
    "price_high": ["-price", "-created_at"],
    "newest": ["-created_at"],
    "rating": ["-avg_rating", "-review_count", "-created_at"],
    "popularity": ["-sales_count", "-view_count", "-created_at"],
}

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def levenshtein_distance(a, b):
    """Classic edit distance: insertions, deletions and substitutions cost 1."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], previous[j], current[j - 1]) + 1)
        previous = current
    return previous[-1]


def did_you_mean(query, terms=None, max_distance=2):
    lowered = (query or "").strip().lower()
    if not lowered:
        return None
    for term in terms or COMMON_TERMS:
        if lowered != term and levenshtein_distance(lowered, term) <= max_distance:
            return term
    return None


def related_searches(query, limit=5):
    query = (query or "").strip()
    if not query:
        return []
    return [template.format(q=query) for template in RELATED_SEARCH_TEMPLATES][:limit]


def popular_searches():
    return list(POPULAR_SEARCHES)


def trending_searches():
    return list(TRENDING_SEARCHES)


def _text_query(query, fields=("name", "description", "brand", "tags")):
    # tags match against the stored JSON text
    condition = Q()
    for field in fields:
        condition |= Q(**{f"{field}__icontains": query})
    return condition


def resolve_category(value):
    if not value:
        return None
    return (
        Category.objects.filter(is_active=True)
        .filter(Q(slug=value) | Q(name__iexact=value))
        .first()
    )


def _category_condition(category):
    if category.level == CategoryLevel.CATEGORY:
        ids = category.descendant_ids()
        return Q(category_id__in=ids) | Q(sub_category_id__in=ids) | Q(sub_sub_category_id__in=ids)
    if category.level == CategoryLevel.SUBCATEGORY:
        return Q(sub_category=category)
    return Q(sub_sub_category=category)


def build_search_queryset(q=None, category=None, brand=None, min_price=None, max_price=None,
                          in_stock=None, rating=None):
    qs = Product.objects.visible().annotate(
        avg_rating=Coalesce(Avg("reviews__rating"), 0.0, output_field=FloatField()),
        review_count=Count("reviews", distinct=True),
    )

    if q:
        qs = qs.filter(_text_query(q))

    if category:
        category_obj = resolve_category(category)
        if category_obj is not None:
            qs = qs.filter(_category_condition(category_obj))

    if brand:
        brands = [b for b in brand if b]
        if brands:
            brand_condition = Q()
            for b in brands:
                brand_condition |= Q(brand__icontains=b)
            qs = qs.filter(brand_condition)

    if min_price is not None:
        qs = qs.filter(price__gte=min_price)
    if max_price is not None:
        qs = qs.filter(price__lte=max_price)

    if in_stock:
        in_stock_ids = (
            Product.objects.visible()
            .annotate(stock_total=Coalesce(Sum("variants__stock"), 0, output_field=IntegerField()))
            .filter(stock_total__gt=0)
            .values("pk")
        )
        qs = qs.filter(pk__in=in_stock_ids)

    if rating is not None:
        qs = qs.filter(avg_rating__gte=rating)

    return qs


def get_search_aggregations(queryset):
    """Brand, leaf category and price bucket facets for a result set."""
    ids = queryset.values("pk")
    products = Product.objects.filter(pk__in=ids)

    brands = [
        {"name": row["brand"], "count": row["count"]}
        for row in products.exclude(brand="").values("brand").annotate(count=Count("id")).order_by("-count", "brand")[:20]
    ]

    categories = [
        {
            "id": row["sub_sub_category"],
            "name": row["sub_sub_category__name"],
            "slug": row["sub_sub_category__slug"],
            "count": row["count"],
        }
        for row in products.filter(sub_sub_category__isnull=False)
        .values("sub_sub_category", "sub_sub_category__name", "sub_sub_category__slug")
        .annotate(count=Count("id"))
        .order_by("-count")[:10]
    ]

    bucket_counts = {}
    for lower, upper in zip(PRICE_BOUNDARIES, PRICE_BOUNDARIES[1:]):
        bucket_counts[f"{lower}-{upper}"] = Count("id", filter=Q(price__gte=lower, price__lt=upper))
    bucket_counts["Other"] = Count(
        "id", filter=Q(price__lt=PRICE_BOUNDARIES[0]) | Q(price__gte=PRICE_BOUNDARIES[-1])
    )
    counts = products.aggregate(**bucket_counts)

    price_ranges = []
    for lower, upper in zip(PRICE_BOUNDARIES, PRICE_BOUNDARIES[1:]):
        key = f"{lower}-{upper}"
        if counts[key]:
            price_ranges.append({"range": key, "min": lower, "max": upper, "count": counts[key]})
    if counts["Other"]:
        price_ranges.append({"range": "Other", "min": None, "max": None, "count": counts["Other"]})

    return {"brands": brands, "categories": categories, "price_ranges": price_ranges}


def generate_suggestions(query, limit=10):
    if not query:
        return []
    products = (
        Product.objects.visible()
        .filter(_text_query(query, ("name", "description", "tags")))
        .only("id", "name", "brand")[:5]
    )
    suggestions = []
    seen_brands = set()
    for product in products:
        suggestions.append({"id": str(product.id), "text": product.name, "type": "product"})
        if product.brand and product.brand not in seen_brands:
            seen_brands.add(product.brand)
            suggestions.append({"id": product.brand, "text": product.brand, "type": "brand"})
    return suggestions[:limit]


def autocomplete(query, limit=10):
    query = (query or "").strip()
    if len(query) < 2:
        return {"suggestions": [], "popular_searches": popular_searches()}

    product_limit = max(1, limit // 2)
    other_limit = max(1, limit // 4)

    products = (
        Product.objects.visible()
        .filter(Q(name__icontains=query) | Q(brand__icontains=query))
        .prefetch_related("variants")[:product_limit]
    )
    categories = Category.objects.filter(is_active=True).filter(
        Q(name__icontains=query) | Q(slug__icontains=query)
    )[:other_limit]
    brands = (
        Product.objects.visible()
        .filter(brand__icontains=query)
        .order_by("brand")
        .values_list("brand", flat=True)
        .distinct()[:other_limit]
    )

    suggestions = [
        {
            "id": str(p.id),
            "text": p.name,
            "type": "product",
            "image": p.primary_image,
            "price": p.price,
        }
        for p in products
    ]
    suggestions += [
        {"id": str(c.id), "text": c.name, "type": "category", "category": c.slug, "level": c.level}
        for c in categories
    ]
    suggestions += [{"id": b, "text": b, "type": "brand"} for b in brands]

    return {"suggestions": suggestions[:limit], "popular_searches": popular_searches()}


def enhanced_search(q=None, category=None, brand=None, min_price=None, max_price=None, in_stock=None,
                    rating=None, sort_by="relevance", page=1, limit=DEFAULT_LIMIT,
                    include_aggregations=False):
    """
    Storefront search over approved, active products. Returns the page of
    products (a queryset slice), optional facets, pagination and meta.
    """
    started = time.monotonic()
    q = (q or "").strip()
    page = max(1, int(page or 1))
    limit = min(max(1, int(limit or DEFAULT_LIMIT)), MAX_LIMIT)

    qs = build_search_queryset(
        q=q, category=category, brand=brand, min_price=min_price, max_price=max_price,
        in_stock=in_stock, rating=rating,
    )
    ordering = SORT_OPTIONS.get(sort_by, SORT_OPTIONS["relevance"])
    qs = qs.select_related("category", "sub_category", "sub_sub_category").order_by(*ordering)

    total = qs.count()
    offset = (page - 1) * limit
    products = list(qs[offset:offset + limit])

    aggregations = get_search_aggregations(qs) if include_aggregations else {}
    elapsed_ms = int((time.monotonic() - started) * 1000)

    logger.info("Search q=%r category=%r returned %d results in %dms", q, category, total, elapsed_ms)

    return {
        "products": products,
        "suggestions": generate_suggestions(q) if q else [],
        "filters": aggregations,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
        "search_meta": {
            "query": q,
            "result_count": total,
            "search_time": elapsed_ms,
            "did_you_mean": did_you_mean(q) if q else None,
            "related_searches": related_searches(q),
        },
    }