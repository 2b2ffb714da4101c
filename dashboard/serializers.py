from rest_framework import serializers

from dashboard.utils import TREND_PERIODS
from orders.models import Order


class DateRangeSerializer(serializers.Serializer):
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    period = serializers.ChoiceField(choices=list(TREND_PERIODS), required=False, default="daily")
    limit = serializers.IntegerField(required=False, min_value=1, max_value=100, default=10)

    def validate(self, attrs):
        start, end = attrs.get("start_date"), attrs.get("end_date")
        if start and end and start > end:
            raise serializers.ValidationError({"start_date": "start_date must be before end_date."})
        return attrs


class LatestOrderSerializer(serializers.ModelSerializer):
    customer_name = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id", "order_number", "customer_name", "created_at",
            "final_amount", "order_status", "payment_status",
        ]

    def get_customer_name(self, obj):
        name_method = getattr(obj.customer, "get_full_name", None)
        if callable(name_method):
            return name_method() or obj.customer.email
        return getattr(obj.customer, "email", str(obj.customer))


class StockAlertSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    product_name = serializers.CharField()
    variant_id = serializers.IntegerField()
    sku = serializers.CharField()
    color = serializers.CharField()
    size = serializers.CharField()
    current_stock = serializers.IntegerField()
    threshold = serializers.IntegerField()
    severity = serializers.CharField()
