import random
from datetime import timedelta
from decimal import Decimal

from django.db import models
from django.db.models import Sum, F
from django.conf import settings
from django.utils import timezone
from django.core.validators import MinValueValidator, MaxValueValidator

from users.models import BaseModel
from products.models import Product, ProductVariant
from orders.enums import (
    OrderStatus, OrderItemStatus, PaymentStatus, RefundStatus, PaymentMethod, CANCELLABLE_STATUSES,
)

User = settings.AUTH_USER_MODEL

ZERO = Decimal("0.00")


def max_cart_item_quantity():
    return getattr(settings, "MAX_CART_ITEM_QUANTITY", 10)


# -----------------------------
# Cart
# -----------------------------
class Cart(BaseModel):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="cart")
    applied_coupon = models.CharField(max_length=20, blank=True)
    coupon_discount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    def __str__(self):
        return f"Cart of {self.user.email}"

    def selected_items(self):
        return self.items.filter(is_selected=True).select_related("product", "variant")

    @property
    def total_amount(self):
        return self.selected_items().aggregate(
            v=Sum(F("price") * F("quantity"), output_field=models.DecimalField())
        )["v"] or ZERO

    @property
    def total_original_amount(self):
        return self.selected_items().aggregate(
            v=Sum(F("original_price") * F("quantity"), output_field=models.DecimalField())
        )["v"] or ZERO

    @property
    def total_discount(self):
        return self.total_original_amount - self.total_amount

    @property
    def subtotal(self):
        return self.total_amount

    @property
    def total_items(self):
        return self.selected_items().aggregate(v=Sum("quantity"))["v"] or 0

    def clear_coupon(self, save=True):
        self.applied_coupon = ""
        self.coupon_discount = ZERO
        if save:
            self.save(update_fields=["applied_coupon", "coupon_discount", "updated_at"])


class CartItem(BaseModel):
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="cart_items")
    variant = models.ForeignKey(ProductVariant, on_delete=models.CASCADE, related_name="cart_items")
    size = models.CharField(max_length=30)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1), MaxValueValidator(10)])
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])
    original_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])
    is_selected = models.BooleanField(default=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "variant", "size"], name="unique_cart_variant_size"),
        ]

    def __str__(self):
        return f"{self.quantity} x {self.product.name} ({self.size})"

    @property
    def line_total(self):
        return self.price * self.quantity

    @property
    def line_discount(self):
        return (self.original_price - self.price) * self.quantity


# -----------------------------
# Order
# -----------------------------
class Order(BaseModel):
    order_number = models.CharField(max_length=32, unique=True, editable=False)
    customer = models.ForeignKey(User, on_delete=models.CASCADE, related_name="orders")

    shipping_address = models.JSONField()
    billing_address = models.JSONField(null=True, blank=True)

    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    order_status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING)

    # Monetary details
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    delivery_charge = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    coupon_code = models.CharField(max_length=20, blank=True)
    coupon_discount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    final_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    estimated_delivery = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    return_requested_at = models.DateTimeField(null=True, blank=True)
    returned_at = models.DateTimeField(null=True, blank=True)
    return_reason = models.TextField(blank=True)

    tracking_id = models.CharField(max_length=100, blank=True)
    payment_id = models.CharField(max_length=255, blank=True)

    refund_status = models.CharField(max_length=20, choices=RefundStatus.choices, null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    refund_reason = models.TextField(blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["customer"]),
            models.Index(fields=["order_status"]),
            models.Index(fields=["payment_status"]),
            models.Index(fields=["created_at"]),
            models.Index(fields=["payment_id"]),
        ]

    def __str__(self):
        return f"Order {self.order_number} - {self.customer.email}"

    @staticmethod
    def generate_order_number():
        timestamp = str(int(timezone.now().timestamp() * 1000))
        return f"SP9{timestamp[-6:]}{random.randint(0, 999):03d}"

    def save(self, *args, **kwargs):
        if not self.order_number:
            number = self.generate_order_number()
            while Order.objects.filter(order_number=number).exists():
                number = self.generate_order_number()
            self.order_number = number
        super().save(*args, **kwargs)

    @property
    def item_count(self):
        return self.items.aggregate(v=Sum("quantity"))["v"] or 0

    def can_be_cancelled(self):
        return self.order_status in CANCELLABLE_STATUSES

    def can_be_returned(self, now=None):
        if self.order_status != OrderStatus.DELIVERED or not self.delivered_at:
            return False
        window = timedelta(days=getattr(settings, "RETURN_WINDOW_DAYS", 7))
        return (now or timezone.now()) <= self.delivered_at + window

    def set_status(self, new_status):
        """Set the order status and stamp the matching timestamp."""
        now = timezone.now()
        self.order_status = new_status
        if new_status == OrderStatus.DELIVERED:
            self.delivered_at = now
        elif new_status == OrderStatus.CANCELLED:
            self.cancelled_at = now
        elif new_status == OrderStatus.RETURN_REQUESTED:
            self.return_requested_at = now
        elif new_status == OrderStatus.RETURNED:
            self.returned_at = now


class OrderItem(BaseModel):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_items")
    variant = models.ForeignKey(
        ProductVariant, on_delete=models.SET_NULL, null=True, blank=True, related_name="order_items",
    )
    seller = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="sold_order_items",
    )
    size = models.CharField(max_length=30)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])
    original_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    status = models.CharField(max_length=20, choices=OrderItemStatus.choices, default=OrderItemStatus.PENDING)

    class Meta:
        ordering = ["id"]
        indexes = [models.Index(fields=["seller", "status"])]

    def __str__(self):
        return f"{self.quantity} x {self.product.name} for {self.order.order_number}"

    @property
    def line_total(self):
        return self.price * self.quantity
