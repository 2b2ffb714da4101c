from rest_framework import serializers
from django.utils.timesince import timesince
from django.utils import timezone

from review.models import Review
from products.models import Product


class ReviewSerializer(serializers.ModelSerializer):
    user = serializers.SerializerMethodField()
    product_id = serializers.PrimaryKeyRelatedField(
        queryset=Product.objects.visible(),
        source="product",
        write_only=True
    )
    product = serializers.SerializerMethodField(read_only=True)
    rating = serializers.IntegerField(min_value=1, max_value=5)
    time_since = serializers.SerializerMethodField()

    class Meta:
        model = Review
        fields = [
            "id", "product", "product_id", "user",
            "rating", "comment", "images", "is_verified_purchase",
            "created_at", "time_since",
        ]
        read_only_fields = ["id", "user", "is_verified_purchase", "created_at", "time_since"]
        validators = []

    def get_user(self, obj):
        return {"id": obj.user_id, "name": obj.user.get_full_name() or "Anonymous"}

    def get_product(self, obj):
        return {
            "id": obj.product.id,
            "name": obj.product.name,
            "slug": obj.product.slug,
        }

    def get_time_since(self, obj):
        return timesince(obj.created_at, timezone.now()) + " ago"

    def validate_images(self, value):
        if not isinstance(value, list) or not all(isinstance(i, str) for i in value):
            raise serializers.ValidationError("Images must be a list of URLs.")
        return value

    def validate(self, attrs):
        if self.instance is None:
            user = self.context['request'].user
            product = attrs.get('product')
            if product.vendor_id == user.id:
                raise serializers.ValidationError("You cannot review your own product.")
            if Review.objects.filter(user=user, product=product).exists():
                raise serializers.ValidationError("You have already reviewed this product.")
        return attrs
