from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    RETURN_REQUESTED = "return_requested", "Return requested"
    RETURNED = "returned", "Returned"


class OrderItemStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    RETURNED = "returned", "Returned"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially refunded"


class RefundStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    PROCESSED = "processed", "Processed"


class PaymentMethod(models.TextChoices):
    COD = "cod", "Cash on delivery"
    CARD = "card", "Card"
    UPI = "upi", "UPI"
    NETBANKING = "netbanking", "Net banking"
    WALLET = "wallet", "Wallet"
    STRIPE = "stripe", "Stripe"


CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING)

# Order status -> status applied to its items
ITEM_STATUS_FOR_ORDER = {
    OrderStatus.CONFIRMED: OrderItemStatus.CONFIRMED,
    OrderStatus.PROCESSING: OrderItemStatus.PROCESSING,
    OrderStatus.SHIPPED: OrderItemStatus.SHIPPED,
    OrderStatus.DELIVERED: OrderItemStatus.DELIVERED,
    OrderStatus.CANCELLED: OrderItemStatus.CANCELLED,
    OrderStatus.RETURNED: OrderItemStatus.RETURNED,
}

# Forward fulfilment path shared by orders and their items
FULFILMENT_FLOW = ("pending", "confirmed", "processing", "shipped", "delivered")

# Only the return and refund flow moves an order out of these
CLOSED_STATUSES = (
    OrderStatus.DELIVERED, OrderStatus.RETURN_REQUESTED, OrderStatus.RETURNED, OrderStatus.CANCELLED,
)

SELLER_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED)
