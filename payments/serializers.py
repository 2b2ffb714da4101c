from rest_framework import serializers

from payments.models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)
    customer_email = serializers.EmailField(source="customer.email", read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id", "order", "order_number", "customer", "customer_email",
            "amount", "currency", "payment_method", "session_id", "transaction_id",
            "status", "note", "created_at", "updated_at",
        ]
        read_only_fields = fields


class CheckoutSerializer(serializers.Serializer):
    order_number = serializers.CharField(max_length=32)
