from rest_framework import serializers

from products.serializers import ProductListSerializer
from search.utils import SORT_OPTIONS, DEFAULT_LIMIT, MAX_LIMIT


class CommaListField(serializers.ListField):
    """Accepts `?brand=a&brand=b` as well as `?brand=a,b`."""

    def get_value(self, dictionary):
        if hasattr(dictionary, "getlist"):
            values = dictionary.getlist(self.field_name)
            if not values:
                return serializers.empty
            return [v.strip() for value in values for v in value.split(",") if v.strip()]
        return super().get_value(dictionary)


class SearchQuerySerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True, default="")
    category = serializers.CharField(required=False, allow_blank=True)
    brand = CommaListField(child=serializers.CharField(), required=False)
    min_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    max_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    in_stock = serializers.BooleanField(required=False, default=False)
    rating = serializers.FloatField(required=False, min_value=0, max_value=5)
    sort_by = serializers.ChoiceField(choices=list(SORT_OPTIONS), required=False, default="relevance")
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=MAX_LIMIT, default=DEFAULT_LIMIT)
    include_aggregations = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        low, high = attrs.get("min_price"), attrs.get("max_price")
        if low is not None and high is not None and low > high:
            raise serializers.ValidationError({"min_price": "min_price cannot exceed max_price."})
        return attrs


class AutocompleteQuerySerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True, default="")
    limit = serializers.IntegerField(required=False, min_value=1, max_value=50, default=10)


class SearchResultSerializer(ProductListSerializer):
    review_count = serializers.IntegerField(read_only=True)

    class Meta(ProductListSerializer.Meta):
        fields = ProductListSerializer.Meta.fields + ["review_count"]
        read_only_fields = fields
        ref_name = "SearchResultSerializer"
