# orders/utils.py
import logging
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from orders.models import Cart, CartItem, Order, OrderItem, max_cart_item_quantity
from orders.enums import (
    OrderStatus, OrderItemStatus, PaymentStatus, RefundStatus, PaymentMethod, ITEM_STATUS_FOR_ORDER,
    FULFILMENT_FLOW, CLOSED_STATUSES, SELLER_STATUSES,
)
from products.models import Product, ProductVariant
from common.models import Wishlist
from inventory.utils import InventoryError, check_stock, reserve_stock, release_stock
from coupons import utils as coupon_utils
from notification.utils import (
    notify_new_order, notify_order_cancelled, notify_order_status_changed,
    notify_return_requested, notify_refund_updated,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

REQUIRED_ADDRESS_FIELDS = ["name", "phone", "address_line1", "city", "state", "pincode"]


class OrderError(ValueError):
    pass


class CartError(ValueError):
    pass


def _money(value):
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _setting(name, default):
    return Decimal(str(getattr(settings, name, default)))


# -------- Fees --------
def calculate_platform_fee(amount):
    fee = _setting("PLATFORM_FEE", 20)
    if getattr(settings, "PLATFORM_FEE_TYPE", "fixed") == "percentage":
        return _money(Decimal(str(amount)) * fee / Decimal("100"))
    return _money(fee)


def calculate_delivery_fee(amount):
    if Decimal(str(amount)) >= _setting("FREE_DELIVERY_MIN_AMOUNT", 500):
        return ZERO
    return _money(_setting("DELIVERY_FEE", 50))


def is_valid_order_amount(amount):
    amount = Decimal(str(amount))
    return _setting("MIN_ORDER_AMOUNT", 100) <= amount <= _setting("MAX_ORDER_AMOUNT", 50000)


def calculate_cart_totals(cart):
    """
    Totals for the selected cart lines: original amount, item discount,
    discounted amount, coupon, fees and the final payable amount.
    """
    total_amount = _money(cart.total_original_amount)
    discounted_amount = _money(cart.total_amount)
    discount = total_amount - discounted_amount
    coupon_discount = _money(cart.coupon_discount) if cart.applied_coupon else ZERO

    platform_fee = calculate_platform_fee(discounted_amount)
    delivery_charge = calculate_delivery_fee(discounted_amount)

    final_amount = discounted_amount - coupon_discount + platform_fee + delivery_charge
    if final_amount < platform_fee + delivery_charge:
        final_amount = platform_fee + delivery_charge

    return {
        "total_amount": total_amount,
        "discount": discount,
        "discounted_amount": discounted_amount,
        "coupon_code": cart.applied_coupon,
        "coupon_discount": coupon_discount,
        "platform_fee": platform_fee,
        "delivery_charge": delivery_charge,
        "final_amount": _money(final_amount),
        "total_items": cart.total_items,
    }


# -------- Cart --------
def get_or_create_cart(user):
    cart, _ = Cart.objects.get_or_create(user=user)
    return cart


def _get_cart_item(user, item_id):
    item = CartItem.objects.select_related("cart", "product", "variant").filter(
        pk=item_id, cart__user=user
    ).first()
    if item is None:
        raise CartError("Item not found in cart")
    return item


def _check_quantity(quantity):
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise CartError("Quantity must be an integer")
    limit = max_cart_item_quantity()
    if quantity < 1 or quantity > limit:
        raise CartError(f"Quantity must be between 1 and {limit}")
    return quantity


def add_to_cart(user, product_id, variant_id, size, quantity=1):
    quantity = _check_quantity(quantity)

    product = Product.objects.visible().filter(pk=product_id).first()
    if product is None:
        raise CartError("Product not found")

    variant = ProductVariant.objects.filter(pk=variant_id, product=product).first()
    if variant is None:
        raise CartError("Product variant not found")
    if (size or "").strip().lower() != variant.size.lower():
        raise CartError("Size does not match the selected variant")
    if variant.price > variant.original_price:
        raise CartError(
            f"Invalid pricing: selling price ({variant.price}) cannot be greater "
            f"than original price ({variant.original_price})"
        )

    cart = get_or_create_cart(user)
    with transaction.atomic():
        item = cart.items.select_for_update().filter(variant=variant, size=variant.size).first()
        new_quantity = min((item.quantity if item else 0) + quantity, max_cart_item_quantity())
        if variant.stock < new_quantity:
            raise CartError("Insufficient stock for selected variant")

        if item:
            item.quantity = new_quantity
            item.price = variant.price
            item.original_price = variant.original_price
            item.is_selected = True
            item.save(update_fields=["quantity", "price", "original_price", "is_selected", "updated_at"])
        else:
            item = CartItem.objects.create(
                cart=cart,
                product=product,
                variant=variant,
                size=variant.size,
                quantity=new_quantity,
                price=variant.price,
                original_price=variant.original_price,
            )
        coupon_utils.revalidate_cart_coupon(cart)

    logger.info("User %s added %s x variant %s to cart", user.pk, quantity, variant.pk)
    return item


def update_cart_item(user, item_id, quantity=None, is_selected=None):
    item = _get_cart_item(user, item_id)
    if quantity is not None:
        quantity = _check_quantity(quantity)
        if item.variant.stock < quantity:
            raise CartError("Insufficient stock")
        item.quantity = quantity
    if is_selected is not None:
        item.is_selected = bool(is_selected)
    item.save(update_fields=["quantity", "is_selected", "updated_at"])
    coupon_utils.revalidate_cart_coupon(item.cart)
    return item


def remove_cart_item(user, item_id):
    item = _get_cart_item(user, item_id)
    cart = item.cart
    item.delete()
    coupon_utils.revalidate_cart_coupon(cart)
    return cart


def clear_cart(user):
    cart = get_or_create_cart(user)
    cart.items.all().delete()
    cart.clear_coupon()
    return cart


def move_to_wishlist(user, item_id):
    item = _get_cart_item(user, item_id)
    cart = item.cart
    with transaction.atomic():
        wishlist_item, _ = Wishlist.objects.get_or_create(user=user, product=item.product)
        item.delete()
        coupon_utils.revalidate_cart_coupon(cart)
    return wishlist_item


# -------- Orders --------
def validate_shipping_address(address):
    if not address or not isinstance(address, dict):
        raise OrderError("Shipping address is required")
    for field in REQUIRED_ADDRESS_FIELDS:
        if not str(address.get(field) or "").strip():
            raise OrderError(f"Shipping address {field} is required")
    return address


def create_order_from_cart(user, shipping_address, payment_method, billing_address=None, notes=""):
    """
    Turn the selected cart lines into an order: price it, reserve the
    stock, consume the coupon and empty those lines from the cart.
    """
    validate_shipping_address(shipping_address)
    if not payment_method:
        raise OrderError("Payment method is required")
    if payment_method not in PaymentMethod.values:
        raise OrderError(f"Invalid payment method: {payment_method}")

    cart = Cart.objects.filter(user=user).first()
    items = list(cart.selected_items()) if cart else []
    if not items:
        raise OrderError("Cart is empty")

    stock_items = [
        {"product_id": i.product_id, "variant_id": i.variant_id, "quantity": i.quantity} for i in items
    ]
    stock = check_stock(stock_items)
    if not stock["in_stock"]:
        details = ", ".join(
            f"{u['product_id']} - Requested: {u['requested']}, Available: {u['available']}"
            for u in stock["unavailable_items"]
        )
        raise OrderError(f"Insufficient stock for: {details}")

    totals = calculate_cart_totals(cart)
    if not is_valid_order_amount(totals["discounted_amount"]):
        raise OrderError(
            f"Order amount must be between ₹{_setting('MIN_ORDER_AMOUNT', 100)} "
            f"and ₹{_setting('MAX_ORDER_AMOUNT', 50000)}"
        )

    estimated_delivery = timezone.now() + timedelta(days=getattr(settings, "ESTIMATED_DELIVERY_DAYS", 7))

    with transaction.atomic():
        order = Order.objects.create(
            customer=user,
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
            payment_method=payment_method,
            total_amount=totals["total_amount"],
            discount=totals["discount"],
            platform_fee=totals["platform_fee"],
            delivery_charge=totals["delivery_charge"],
            coupon_code=totals["coupon_code"] or "",
            coupon_discount=totals["coupon_discount"],
            final_amount=totals["final_amount"],
            estimated_delivery=estimated_delivery,
            notes=notes or "",
        )
        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                product=i.product,
                variant=i.variant,
                seller_id=i.product.vendor_id,
                size=i.size,
                quantity=i.quantity,
                price=i.price,
                original_price=i.original_price,
                discount=(i.original_price - i.price) * i.quantity,
            )
            for i in items
        ])

        try:
            reserve_stock(stock_items, reason=f"Order {order.order_number}", user=user)
        except InventoryError as e:
            logger.warning("Stock reservation failed for order %s: %s", order.order_number, e)
            order.delete()
            raise OrderError(f"Failed to reserve stock: {e}")

        if order.coupon_code:
            coupon_utils.increment_usage(order.coupon_code)

        cart.items.filter(pk__in=[i.pk for i in items]).delete()
        cart.clear_coupon()

    logger.info("Order %s created from cart for user %s", order.order_number, user.pk)
    notify_new_order(order)
    return order


def _stock_items_for(order):
    return [
        {"product_id": i.product_id, "variant_id": i.variant_id, "quantity": i.quantity}
        for i in order.items.exclude(variant__isnull=True).exclude(status=OrderItemStatus.CANCELLED)
    ]


def _release_order_stock(order, user, reason):
    items = _stock_items_for(order)
    if items:
        release_stock(items, reason=reason, user=user)


def cancel_order(order, user=None, reason=""):
    if not order.can_be_cancelled():
        raise OrderError("Order cannot be cancelled at this stage")

    with transaction.atomic():
        _release_order_stock(order, user, f"Order {order.order_number} cancelled")

        order.set_status(OrderStatus.CANCELLED)
        order.cancellation_reason = reason or ""
        if order.payment_status == PaymentStatus.COMPLETED:
            order.refund_status = RefundStatus.PENDING
            order.refund_amount = order.final_amount
            order.refund_reason = reason or "Order cancelled"
        order.save()
        order.items.update(status=OrderItemStatus.CANCELLED)

        if order.coupon_code:
            coupon_utils.decrement_usage(order.coupon_code)

    logger.info("Order %s cancelled by user %s", order.order_number, getattr(user, "pk", None))
    notify_order_cancelled(order, cancelled_by=user)
    return order


def _flow_rank(value):
    return FULFILMENT_FLOW.index(value)


def _closed_error(order):
    if order.order_status == OrderStatus.CANCELLED:
        return OrderError("Cancelled orders cannot be updated")
    return OrderError(f"Order is already {order.get_order_status_display().lower()}")


def _save_tracking_id(order, tracking_id):
    if tracking_id and tracking_id != order.tracking_id:
        order.tracking_id = tracking_id
        order.save(update_fields=["tracking_id", "updated_at"])
    return order


def update_order_status(order, new_status, user=None, tracking_id=None):
    """
    Move an order forward through fulfilment. Delivered, returned and
    cancelled orders only change through the return and refund flow.
    """
    if new_status not in OrderStatus.values:
        raise OrderError("Invalid order status")
    if order.order_status == new_status:
        return _save_tracking_id(order, tracking_id)
    if order.order_status in CLOSED_STATUSES:
        raise _closed_error(order)

    if new_status == OrderStatus.CANCELLED:
        return cancel_order(order, user=user, reason="Cancelled by administrator")
    if new_status not in FULFILMENT_FLOW:
        raise OrderError("Returns are handled through the return and refund actions")
    if _flow_rank(new_status) < _flow_rank(order.order_status):
        raise OrderError(f"Order cannot move back from {order.order_status} to {new_status}")

    with transaction.atomic():
        order.set_status(new_status)
        if new_status == OrderStatus.DELIVERED:
            order.payment_status = PaymentStatus.COMPLETED
        if tracking_id:
            order.tracking_id = tracking_id
        order.save()

        item_status = ITEM_STATUS_FOR_ORDER.get(new_status)
        if item_status:
            behind = FULFILMENT_FLOW[:_flow_rank(item_status)]
            order.items.filter(status__in=behind).update(status=item_status)

        if new_status == OrderStatus.DELIVERED:
            for item in order.items.exclude(status=OrderItemStatus.CANCELLED):
                Product.objects.filter(pk=item.product_id).update(sales_count=F("sales_count") + item.quantity)

    logger.info("Order %s moved to %s", order.order_number, new_status)
    notify_order_status_changed(order, changed_by=user)
    return order


def update_seller_status(order, seller, new_status, tracking_id=None):
    """
    Move a seller's own lines forward. The order follows once every
    remaining line has reached the same stage.
    """
    if new_status not in SELLER_STATUSES:
        raise OrderError("Sellers can only move their items forward through fulfilment")
    if order.order_status in CLOSED_STATUSES:
        raise _closed_error(order)

    items = order.items.filter(seller=seller).exclude(status=OrderItemStatus.CANCELLED)
    current = list(items.values_list("status", flat=True))
    if not current:
        raise OrderError("This order has no items from you")
    if any(_flow_rank(s) > _flow_rank(new_status) for s in current):
        raise OrderError(f"Items cannot move back to {new_status}")

    with transaction.atomic():
        items.update(status=new_status)
        logger.info("Seller %s moved items of order %s to %s", seller.pk, order.order_number, new_status)

        remaining = order.items.exclude(status=OrderItemStatus.CANCELLED).values_list("status", flat=True)
        lowest = min(remaining, key=_flow_rank)
        if _flow_rank(lowest) > _flow_rank(order.order_status):
            return update_order_status(order, lowest, user=seller, tracking_id=tracking_id)
    return _save_tracking_id(order, tracking_id)


def process_payment(order, payment_id):
    if order.order_status == OrderStatus.CANCELLED:
        raise OrderError("Cannot pay for a cancelled order")
    if order.payment_status == PaymentStatus.COMPLETED:
        raise OrderError("Order is already paid")

    order.payment_status = PaymentStatus.COMPLETED
    order.payment_id = payment_id or ""
    if order.order_status == OrderStatus.PENDING:
        order.order_status = OrderStatus.CONFIRMED
        order.items.filter(status=OrderItemStatus.PENDING).update(status=OrderItemStatus.CONFIRMED)
    order.save()
    logger.info("Payment %s recorded for order %s", payment_id, order.order_number)
    return order


def mark_payment_failed(order):
    if order.payment_status == PaymentStatus.COMPLETED:
        return order
    order.payment_status = PaymentStatus.FAILED
    order.save(update_fields=["payment_status", "updated_at"])
    logger.info("Payment failed for order %s", order.order_number)
    return order


def request_return(order, reason):
    if order.order_status != OrderStatus.DELIVERED:
        if order.order_status == OrderStatus.RETURN_REQUESTED:
            raise OrderError("Return already requested for this order")
        raise OrderError("Only delivered orders can be returned")
    if not order.delivered_at:
        raise OrderError("Order delivery date not found")
    if not order.can_be_returned():
        raise OrderError(f"Return window has expired ({getattr(settings, 'RETURN_WINDOW_DAYS', 7)} days)")
    if not (reason or "").strip():
        raise OrderError("Return reason is required")

    order.set_status(OrderStatus.RETURN_REQUESTED)
    order.return_reason = reason
    order.refund_status = RefundStatus.PENDING
    order.refund_amount = order.final_amount
    order.refund_reason = reason
    order.save()

    logger.info("Return requested for order %s", order.order_number)
    notify_return_requested(order)
    return order


def process_refund(order, action, user=None, amount=None, reason=""):
    """
    Admin step for a refund: approve or reject a pending refund, then
    process an approved one.
    """
    if action == "approve":
        if order.refund_status != RefundStatus.PENDING:
            raise OrderError("Only pending refunds can be approved")
        order.refund_status = RefundStatus.APPROVED
        if amount is not None:
            amount = _money(amount)
            if amount <= 0 or amount > order.final_amount:
                raise OrderError("Refund amount must be between 0 and the order amount")
            order.refund_amount = amount

    elif action == "reject":
        if order.refund_status != RefundStatus.PENDING:
            raise OrderError("Only pending refunds can be rejected")
        order.refund_status = RefundStatus.REJECTED
        if reason:
            order.refund_reason = reason
        if order.order_status == OrderStatus.RETURN_REQUESTED:
            order.order_status = OrderStatus.DELIVERED

    elif action == "process":
        if order.refund_status != RefundStatus.APPROVED:
            raise OrderError("Only approved refunds can be processed")
        with transaction.atomic():
            order.refund_status = RefundStatus.PROCESSED
            order.refunded_at = timezone.now()
            if order.refund_amount >= order.final_amount:
                order.payment_status = PaymentStatus.REFUNDED
            else:
                order.payment_status = PaymentStatus.PARTIALLY_REFUNDED
            if order.order_status == OrderStatus.RETURN_REQUESTED:
                _release_order_stock(order, user, f"Order {order.order_number} returned")
                order.set_status(OrderStatus.RETURNED)
                order.items.update(status=OrderItemStatus.RETURNED)
            order.save()
            logger.info("Refund of %s processed for order %s", order.refund_amount, order.order_number)
            notify_refund_updated(order, processed_by=user)
            return order
    else:
        raise OrderError("Action must be one of: approve, reject, process")

    order.save()
    notify_refund_updated(order, processed_by=user)
    return order
