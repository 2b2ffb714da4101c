from rest_framework import serializers

from inventory.models import StockMovement
from inventory.enums import StockOperation


class StockUpdateSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    variant_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    operation = serializers.ChoiceField(choices=[StockOperation.INCREASE, StockOperation.DECREASE])
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class StockItemSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    variant_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)


class StockCheckSerializer(serializers.Serializer):
    items = StockItemSerializer(many=True, allow_empty=False)


class BulkStockEntrySerializer(serializers.Serializer):
    sku = serializers.CharField(max_length=64)
    new_stock = serializers.IntegerField()
    reason = serializers.CharField(required=False, allow_blank=True)


class BulkStockUpdateSerializer(serializers.Serializer):
    updates = BulkStockEntrySerializer(many=True, allow_empty=False)
    reason = serializers.CharField(required=False, allow_blank=True, default="Bulk stock update")


class StockMovementSerializer(serializers.ModelSerializer):
    performed_by_email = serializers.EmailField(source="performed_by.email", read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = [
            "id", "product", "variant", "sku", "operation", "quantity",
            "previous_stock", "new_stock", "reason", "performed_by_email", "created_at",
        ]
        read_only_fields = fields
