from rest_framework import serializers
from django.core.exceptions import ValidationError as DjangoValidationError

from common.models import Category, Wishlist
from products.models import Product
from products.serializers import ProductListSerializer


# -------------------
# Category
# -------------------
class CategorySerializer(serializers.ModelSerializer):
    parent_category = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        required=False,
        allow_null=True,
        error_messages={"does_not_exist": "Parent category not found"},
    )
    parent_name = serializers.CharField(source="parent_category.name", read_only=True, default=None)
    level_display = serializers.CharField(source="get_level_display", read_only=True)
    children_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = [
            'id', 'name', 'slug', 'description', 'image',
            'parent_category', 'parent_name', 'level', 'level_display',
            'is_active', 'sort_order', 'children_count',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'slug', 'created_at', 'updated_at']
        # name uniqueness per parent is checked in validate()
        validators = []

    def get_children_count(self, obj):
        return obj.children.count()

    def validate(self, attrs):
        level = attrs.get("level", getattr(self.instance, "level", None))
        if level is None:
            level = Category._meta.get_field("level").default
        if "parent_category" in attrs:
            parent = attrs["parent_category"]
        else:
            parent = getattr(self.instance, "parent_category", None)

        try:
            Category.validate_hierarchy(level, parent)
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.message_dict)

        if self.instance and parent and parent.pk == self.instance.pk:
            raise serializers.ValidationError({"parent_category": "A category cannot be its own parent"})

        name = attrs.get("name", getattr(self.instance, "name", None))
        qs = Category.objects.filter(name__iexact=name, parent_category=parent)
        if self.instance:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError({"name": "Category with this name already exists at this level."})
        return attrs


class CategoryBreadcrumbSerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'name', 'slug', 'level']


# -------------------
# Wishlist
# -------------------
class WishlistSerializer(serializers.ModelSerializer):
    product = ProductListSerializer(read_only=True)
    product_id = serializers.PrimaryKeyRelatedField(
        queryset=Product.objects.all(), source='product', write_only=True
    )

    class Meta:
        model = Wishlist
        fields = ['id', 'product', 'product_id', 'added_at']
        read_only_fields = ['id', 'product', 'added_at']
        ref_name = "WishlistSerializer"

    def validate_product_id(self, value):
        if not value.is_visible:
            raise serializers.ValidationError("Product is not available.")
        return value
