from rest_framework import serializers

from products.models import Product, ProductVariant, ProductSpecification
from products.enums import ApprovalStatus
from common.models import Category
from common.enums import CategoryLevel
from review.models import Review
from inventory.utils import record_stock_set, sync_product_activation


class ProductVariantSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(required=False)
    sku = serializers.CharField(required=False, allow_blank=True, max_length=64)
    discount_percentage = serializers.IntegerField(read_only=True)

    class Meta:
        model = ProductVariant
        fields = [
            "id", "color", "color_code", "size", "price", "original_price",
            "stock", "sku", "images", "discount_percentage",
        ]

    def validate(self, attrs):
        price = attrs.get("price", getattr(self.instance, "price", None))
        original_price = attrs.get("original_price", getattr(self.instance, "original_price", None))
        if price is not None and original_price is not None and price > original_price:
            raise serializers.ValidationError(
                {"price": "Selling price cannot be greater than original price."}
            )
        return attrs


class ProductSpecificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductSpecification
        fields = [
            "fabric", "fit", "wash_care", "material", "capacity",
            "microwave_safe", "dimensions", "weight",
        ]


class ProductReviewInlineSerializer(serializers.ModelSerializer):
    user = serializers.SerializerMethodField()

    class Meta:
        model = Review
        fields = ["id", "rating", "comment", "user", "created_at"]

    def get_user(self, obj):
        return {
            "id": obj.user.id,
            "name": obj.user.get_full_name() or "Anonymous",
        }


class ProductListSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)
    image = serializers.CharField(source="primary_image", read_only=True)
    total_stock = serializers.IntegerField(read_only=True)
    discount_percentage = serializers.IntegerField(read_only=True)
    average_rating = serializers.FloatField(read_only=True)

    class Meta:
        model = Product
        fields = [
            "id", "name", "slug", "brand", "image", "category", "category_name",
            "price", "original_price", "discount_percentage", "total_stock",
            "average_rating", "is_featured", "is_trending", "is_active",
            "approval_status", "created_at",
        ]
        read_only_fields = fields
        ref_name = "ProductListSerializer"


class ProductSerializer(serializers.ModelSerializer):
    vendor_id = serializers.IntegerField(source="vendor.id", read_only=True)
    vendor_name = serializers.SerializerMethodField()
    category = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.filter(level=CategoryLevel.CATEGORY)
    )
    sub_category = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.filter(level=CategoryLevel.SUBCATEGORY), required=False, allow_null=True
    )
    sub_sub_category = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.filter(level=CategoryLevel.SUB_SUBCATEGORY), required=False, allow_null=True
    )
    variants = ProductVariantSerializer(many=True)
    specification = ProductSpecificationSerializer(required=False, allow_null=True)
    reviews = ProductReviewInlineSerializer(many=True, read_only=True)

    min_price = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    max_price = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    total_stock = serializers.IntegerField(read_only=True)
    discount_percentage = serializers.IntegerField(read_only=True)
    average_rating = serializers.FloatField(read_only=True)

    class Meta:
        model = Product
        fields = [
            "id", "vendor_id", "vendor_name",
            "name", "slug", "description", "brand",
            "category", "sub_category", "sub_sub_category",
            "tags", "images", "available_colors", "available_sizes",
            "price", "original_price", "min_price", "max_price",
            "discount_percentage", "total_stock",
            "is_active", "is_featured", "is_trending",
            "approval_status", "review_comments", "reviewed_at",
            "sales_count", "view_count",
            "variants", "specification", "average_rating", "reviews",
            "created_at", "updated_at",
        ]
        read_only_fields = [
            "id", "slug", "price", "original_price", "available_colors", "available_sizes",
            "is_active", "approval_status", "review_comments", "reviewed_at",
            "sales_count", "view_count", "created_at", "updated_at",
        ]
        ref_name = "ProductsProductSerializer"

    def get_vendor_name(self, obj):
        return obj.vendor.business_name or obj.vendor.get_full_name() or obj.vendor.email

    def validate_variants(self, value):
        if not value:
            raise serializers.ValidationError("At least one variant is required.")
        combos = [(v.get("color", "").lower(), v.get("size", "").lower()) for v in value]
        if len(combos) != len(set(combos)):
            raise serializers.ValidationError("Duplicate color/size combination.")
        skus = [v["sku"] for v in value if v.get("sku")]
        if len(skus) != len(set(skus)):
            raise serializers.ValidationError("Duplicate SKU in variants.")
        return value

    def validate_tags(self, value):
        if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
            raise serializers.ValidationError("Tags must be a list of strings.")
        return [t.strip() for t in value if t.strip()]

    def validate_images(self, value):
        if not isinstance(value, list) or not all(isinstance(i, str) for i in value):
            raise serializers.ValidationError("Images must be a list of URLs.")
        return value

    def validate(self, attrs):
        category = attrs.get("category", getattr(self.instance, "category", None))
        sub_category = attrs.get("sub_category", getattr(self.instance, "sub_category", None))
        sub_sub_category = attrs.get("sub_sub_category", getattr(self.instance, "sub_sub_category", None))

        if sub_category and sub_category.parent_category_id != category.id:
            raise serializers.ValidationError({"sub_category": "Subcategory does not belong to the selected category."})
        if sub_sub_category:
            if not sub_category:
                raise serializers.ValidationError({"sub_sub_category": "Select a subcategory first."})
            if sub_sub_category.parent_category_id != sub_category.id:
                raise serializers.ValidationError(
                    {"sub_sub_category": "Sub-subcategory does not belong to the selected subcategory."}
                )

        for variant in attrs.get("variants", []):
            sku = variant.get("sku")
            if not sku:
                continue
            clash = ProductVariant.objects.filter(sku=sku)
            if self.instance:
                clash = clash.exclude(product=self.instance)
            if clash.exists():
                raise serializers.ValidationError({"variants": f"SKU '{sku}' already exists."})
        return attrs

    def _save_variants(self, product, variants_data):
        request = self.context.get("request")
        user = getattr(request, "user", None)
        keep_ids = []
        for data in variants_data:
            variant_id = data.pop("id", None)
            if not data.get("sku"):
                data.pop("sku", None)
            variant = None
            if variant_id:
                variant = product.variants.filter(pk=variant_id).first()
            if variant:
                previous = variant.stock
                for field, value in data.items():
                    setattr(variant, field, value)
                variant.save()
            else:
                previous = 0
                variant = ProductVariant.objects.create(product=product, **data)
            if variant.stock != previous:
                record_stock_set(variant, previous, reason="Product edit", user=user)
            keep_ids.append(variant.pk)
        product.variants.exclude(pk__in=keep_ids).delete()

    def create(self, validated_data):
        variants_data = validated_data.pop("variants")
        specification_data = validated_data.pop("specification", None)

        product = Product.objects.create(**validated_data)
        self._save_variants(product, variants_data)

        if specification_data:
            ProductSpecification.objects.create(product=product, **specification_data)

        product.sync_from_variants()
        sync_product_activation(product)
        return product

    def update(self, instance, validated_data):
        variants_data = validated_data.pop("variants", None)
        specification_data = validated_data.pop("specification", None)

        product = super().update(instance, validated_data)

        if variants_data is not None:
            self._save_variants(product, variants_data)

        if specification_data:
            ProductSpecification.objects.update_or_create(product=product, defaults=specification_data)

        product.sync_from_variants()
        if variants_data is not None:
            sync_product_activation(product)
        return product


class ProductReviewActionSerializer(serializers.Serializer):
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class BulkProductStatusSerializer(serializers.Serializer):
    product_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    approval_status = serializers.ChoiceField(choices=ApprovalStatus.choices)
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class BulkProductDeleteSerializer(serializers.Serializer):
    product_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
