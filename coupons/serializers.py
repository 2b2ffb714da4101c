from rest_framework import serializers

from coupons.models import Coupon, code_validator
from coupons.enums import DiscountType
from common.models import Category
from products.models import Product


class CouponSerializer(serializers.ModelSerializer):
    code = serializers.CharField(max_length=20)
    applicable_categories = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(), many=True, required=False
    )
    applicable_products = serializers.PrimaryKeyRelatedField(
        queryset=Product.objects.all(), many=True, required=False
    )
    is_expired = serializers.BooleanField(read_only=True)
    is_valid = serializers.BooleanField(read_only=True)
    remaining_uses = serializers.IntegerField(read_only=True)
    usage_percentage = serializers.IntegerField(read_only=True)

    class Meta:
        model = Coupon
        fields = [
            "id", "code", "description", "discount_type", "discount_value",
            "min_order_amount", "max_discount_amount", "usage_limit", "used_count",
            "is_active", "valid_from", "valid_until",
            "applicable_categories", "applicable_products",
            "is_expired", "is_valid", "remaining_uses", "usage_percentage",
            "created_at", "updated_at",
        ]
        read_only_fields = ["id", "used_count", "created_at", "updated_at"]

    def validate_code(self, value):
        value = value.strip().upper()
        code_validator(value)
        clash = Coupon.objects.filter(code=value)
        if self.instance:
            clash = clash.exclude(pk=self.instance.pk)
        if clash.exists():
            raise serializers.ValidationError("Coupon code already exists")
        return value

    def validate(self, attrs):
        valid_from = attrs.get("valid_from", getattr(self.instance, "valid_from", None))
        valid_until = attrs.get("valid_until", getattr(self.instance, "valid_until", None))
        if valid_from and valid_until and valid_until <= valid_from:
            raise serializers.ValidationError({"valid_until": "Valid until date must be after valid from date"})

        discount_type = attrs.get("discount_type", getattr(self.instance, "discount_type", None))
        discount_value = attrs.get("discount_value", getattr(self.instance, "discount_value", None))
        if discount_type == DiscountType.PERCENTAGE and discount_value is not None and discount_value > 100:
            raise serializers.ValidationError({"discount_value": "Percentage discount cannot exceed 100%"})
        return attrs


class PublicCouponSerializer(serializers.ModelSerializer):
    class Meta:
        model = Coupon
        fields = [
            "code", "description", "discount_type", "discount_value",
            "min_order_amount", "max_discount_amount", "valid_until",
        ]
        read_only_fields = fields


class CouponValidateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=20)
