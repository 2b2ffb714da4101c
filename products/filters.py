import django_filters
from django.db.models import Q, Sum

from common.models import Category
from products.models import Product
from products.enums import ApprovalStatus


class ProductFilter(django_filters.FilterSet):
    category = django_filters.CharFilter(method="filter_category")
    brand = django_filters.CharFilter(method="filter_brand")
    min_price = django_filters.NumberFilter(field_name="price", lookup_expr="gte")
    max_price = django_filters.NumberFilter(field_name="price", lookup_expr="lte")
    is_featured = django_filters.BooleanFilter()
    is_trending = django_filters.BooleanFilter()
    is_active = django_filters.BooleanFilter()
    approval_status = django_filters.ChoiceFilter(choices=ApprovalStatus.choices)
    vendor = django_filters.NumberFilter(field_name="vendor_id")
    in_stock = django_filters.BooleanFilter(method="filter_in_stock")

    class Meta:
        model = Product
        fields = [
            "category", "brand", "min_price", "max_price", "is_featured", "is_trending",
            "is_active", "approval_status", "vendor", "in_stock",
        ]

    def filter_category(self, queryset, name, value):
        """Accepts an id or a slug and includes every descendant category."""
        lookup = {"pk": value} if str(value).isdigit() else {"slug": value}
        category = Category.objects.filter(**lookup).first()
        if category is None:
            return queryset.none()
        ids = category.descendant_ids()
        return queryset.filter(
            Q(category_id__in=ids) | Q(sub_category_id__in=ids) | Q(sub_sub_category_id__in=ids)
        )

    def filter_brand(self, queryset, name, value):
        brands = [b.strip() for b in value.split(",") if b.strip()]
        if not brands:
            return queryset
        query = Q()
        for brand in brands:
            query |= Q(brand__iexact=brand)
        return queryset.filter(query)

    def filter_in_stock(self, queryset, name, value):
        queryset = queryset.annotate(stock_total=Sum("variants__stock"))
        if value:
            return queryset.filter(stock_total__gt=0)
        return queryset.filter(Q(stock_total=0) | Q(stock_total__isnull=True))
