# orders/serializers.py
from rest_framework import serializers

from orders.models import Order, OrderItem, Cart, CartItem, max_cart_item_quantity
from orders.enums import OrderStatus, PaymentMethod, PaymentStatus
from orders.utils import calculate_cart_totals


# -------- Address --------
class AddressSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    phone = serializers.RegexField(r"^[6-9]\d{9}$", error_messages={"invalid": "Enter a valid 10 digit phone number."})
    address_line1 = serializers.CharField(max_length=255)
    address_line2 = serializers.CharField(max_length=255, required=False, allow_blank=True)
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    pincode = serializers.RegexField(r"^[1-9][0-9]{5}$", error_messages={"invalid": "Enter a valid 6 digit pincode."})
    landmark = serializers.CharField(max_length=255, required=False, allow_blank=True)


# -------- Cart --------
class CartItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_image = serializers.CharField(source="product.primary_image", read_only=True)
    color = serializers.CharField(source="variant.color", read_only=True)
    sku = serializers.CharField(source="variant.sku", read_only=True)
    available_stock = serializers.IntegerField(source="variant.stock", read_only=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = CartItem
        fields = [
            "id", "product", "product_name", "product_image", "variant", "color", "sku", "size",
            "quantity", "price", "original_price", "line_total", "available_stock", "is_selected",
        ]
        read_only_fields = fields


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    summary = serializers.SerializerMethodField()

    class Meta:
        model = Cart
        fields = ["id", "items", "applied_coupon", "coupon_discount", "summary", "updated_at"]
        read_only_fields = fields

    def get_summary(self, obj):
        totals = calculate_cart_totals(obj)
        return {key: str(value) if not isinstance(value, (int, str)) else value for key, value in totals.items()}


class AddToCartSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    variant_id = serializers.IntegerField()
    size = serializers.CharField(max_length=30)
    quantity = serializers.IntegerField(default=1, min_value=1)

    def validate_quantity(self, value):
        limit = max_cart_item_quantity()
        if value > limit:
            raise serializers.ValidationError(f"Quantity must be between 1 and {limit}")
        return value


class UpdateCartItemSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(required=False, min_value=1)
    is_selected = serializers.BooleanField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide quantity or is_selected.")
        return attrs


class CouponCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=20)


# -------- Orders --------
class OrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_image = serializers.CharField(source="product.primary_image", read_only=True)
    color = serializers.CharField(source="variant.color", read_only=True, default=None)
    sku = serializers.CharField(source="variant.sku", read_only=True, default=None)
    seller_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id", "product", "product_name", "product_image", "variant", "color", "sku",
            "seller_id", "size", "quantity", "price", "original_price", "discount", "status",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    customer_email = serializers.EmailField(source="customer.email", read_only=True)
    customer_name = serializers.CharField(source="customer.get_full_name", read_only=True)
    order_status_display = serializers.CharField(source="get_order_status_display", read_only=True)
    payment_status_display = serializers.CharField(source="get_payment_status_display", read_only=True)
    item_count = serializers.IntegerField(read_only=True)
    can_be_cancelled = serializers.BooleanField(read_only=True)
    can_be_returned = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id", "order_number", "customer", "customer_email", "customer_name",
            "shipping_address", "billing_address", "payment_method",
            "order_status", "order_status_display", "payment_status", "payment_status_display",
            "total_amount", "discount", "platform_fee", "delivery_charge",
            "coupon_code", "coupon_discount", "final_amount",
            "estimated_delivery", "delivered_at", "cancelled_at", "cancellation_reason",
            "return_requested_at", "returned_at", "return_reason",
            "tracking_id", "payment_id",
            "refund_status", "refund_amount", "refund_reason", "refunded_at",
            "notes", "item_count", "can_be_cancelled", "can_be_returned", "items",
            "created_at", "updated_at",
        ]
        read_only_fields = fields


class CreateOrderSerializer(serializers.Serializer):
    shipping_address = AddressSerializer()
    billing_address = AddressSerializer(required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class ReturnOrderSerializer(serializers.Serializer):
    reason = serializers.CharField()


class OrderStatusUpdateSerializer(serializers.Serializer):
    order_status = serializers.ChoiceField(choices=OrderStatus.choices)
    tracking_id = serializers.CharField(required=False, allow_blank=True)


class BulkOrderStatusSerializer(serializers.Serializer):
    order_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    order_status = serializers.ChoiceField(choices=OrderStatus.choices)


class RefundActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["approve", "reject", "process"])
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentConfirmSerializer(serializers.Serializer):
    payment_id = serializers.CharField(max_length=255)


# -------- Receipt --------
class ReceiptOrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ["product_name", "size", "quantity", "price", "original_price", "line_total"]


class OrderReceiptSerializer(serializers.ModelSerializer):
    items = ReceiptOrderItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source="customer.get_full_name", read_only=True)
    customer_email = serializers.EmailField(source="customer.email", read_only=True)
    order_status_display = serializers.CharField(source="get_order_status_display", read_only=True)
    payment_status_display = serializers.CharField(source="get_payment_status_display", read_only=True)
    payment_method_display = serializers.CharField(source="get_payment_method_display", read_only=True)
    is_paid = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "order_number", "created_at", "estimated_delivery",
            "customer_name", "customer_email", "shipping_address", "billing_address",
            "items", "total_amount", "discount", "coupon_code", "coupon_discount",
            "platform_fee", "delivery_charge", "final_amount",
            "order_status_display", "payment_status_display", "payment_method_display", "is_paid",
        ]

    def get_is_paid(self, obj):
        return obj.payment_status == PaymentStatus.COMPLETED
