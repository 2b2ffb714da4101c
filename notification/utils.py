from __future__ import annotations

import logging
from typing import Optional, Dict, Any, Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone
from django.db import transaction

from users.models import User
from users.enums import UserRole
from notification.models import Notification

logger = logging.getLogger(__name__)


# ---------------------------
# Notification Types
# ---------------------------
class NotificationType:
    ORDER = "order"
    PAYMENT = "payment"
    PRODUCT = "product"
    INVENTORY = "inventory"
    REFUND = "refund"


# ---------------------------
# Helpers
# ---------------------------
def _role_label(user: Optional[User]) -> str:
    if not user or not getattr(user, "role", None):
        return ""
    return str(user.role).capitalize()


def _display_name(user: Optional[User]) -> str:
    if not user:
        return ""
    return user.get_full_name() or user.email or f"User#{user.id}"


def _base_payload(notification: Notification, full_name_from: User) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "message": notification.message,
        "event_time": notification.event_time.isoformat(),
        "seen": notification.seen,
        "path": notification.path,
        "full_name": f"{_role_label(full_name_from)}: {_display_name(full_name_from)}".strip(": "),
        "role": _role_label(full_name_from),
        "meta_data": notification.meta_data or {},
    }


def group_name_for_user(user: User) -> str:
    role = (getattr(user, "role", "") or "").lower()
    if role == UserRole.ADMIN.value or getattr(user, "is_staff", False):
        return f"notifications_admin_{user.id}"
    if role == UserRole.VENDOR.value:
        return f"notifications_vendor_{user.id}"
    return f"notifications_user_{user.id}"


def _safe_group_send(group_name: str, payload: Dict[str, Any]) -> None:
    """
    Fire-and-forget group_send; websocket failures never reach the caller.
    """
    channel_layer = get_channel_layer()
    if not channel_layer:
        return
    try:
        async_to_sync(channel_layer.group_send)(group_name, payload)
    except Exception:
        logger.exception("group_send to %s failed", group_name)


def prepare_notification_meta_data(
    *,
    ntype: str,
    sender: Optional[User] = None,
    extras: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    meta: Dict[str, Any] = {"type": ntype}
    if sender:
        meta["sender_id"] = str(sender.id)
        meta["sender_email"] = sender.email

    if ntype in (NotificationType.ORDER, NotificationType.REFUND):
        meta.setdefault("order_number", None)
        meta.setdefault("order_status", None)
    elif ntype == NotificationType.PAYMENT:
        meta.setdefault("payment_id", None)
        meta.setdefault("payment_status", None)
    elif ntype in (NotificationType.PRODUCT, NotificationType.INVENTORY):
        meta.setdefault("product_id", None)
        meta.setdefault("product_name", None)

    if extras:
        meta.update(extras)
    return meta


# ---------------------------------------------
# Core send function
# ---------------------------------------------
def send_notification_to_user(
    user: User,
    message: str,
    *,
    ntype: str,
    sender: Optional[User] = None,
    meta_data: Optional[Dict[str, Any]] = None,
    path: Optional[str] = None,
) -> Notification:
    notification_meta = prepare_notification_meta_data(ntype=ntype, sender=sender, extras=meta_data)

    notification = Notification.objects.create(
        user=user,
        sender=sender,
        message=message,
        path=path,
        meta_data=notification_meta,
        event_time=timezone.now(),
    )

    payload = _base_payload(notification, full_name_from=sender or user)
    group_name = group_name_for_user(user)

    # Push only after the surrounding transaction has committed.
    transaction.on_commit(
        lambda: _safe_group_send(group_name, {"type": "send_notification", "notification": payload})
    )
    return notification


def _admins() -> Iterable[User]:
    return User.objects.filter(role=UserRole.ADMIN.value, is_active=True)


def notify_admins(message: str, *, ntype: str, sender: Optional[User] = None,
                  meta_data: Optional[Dict[str, Any]] = None, path: Optional[str] = None) -> int:
    count = 0
    for admin in _admins():
        send_notification_to_user(admin, message, ntype=ntype, sender=sender, meta_data=meta_data, path=path)
        count += 1
    return count


# ---------------------------------------------
# Products
# ---------------------------------------------
def _product_meta(product, **extras) -> Dict[str, Any]:
    meta = {"product_id": product.id, "product_name": product.name}
    meta.update(extras)
    return meta


def notify_product_submitted(product) -> None:
    """Admins get a heads up when a vendor product enters the review queue."""
    notify_admins(
        f"New product '{product.name}' is awaiting approval.",
        ntype=NotificationType.PRODUCT,
        sender=product.vendor,
        meta_data=_product_meta(product, action="submitted"),
    )


def notify_product_reviewed(product, reviewer: Optional[User] = None) -> Notification:
    status = product.get_approval_status_display()
    message = f"Your product '{product.name}' was reviewed: {status}."
    if product.review_comments:
        message += f" Comments: {product.review_comments}"
    return send_notification_to_user(
        product.vendor,
        message,
        ntype=NotificationType.PRODUCT,
        sender=reviewer,
        meta_data=_product_meta(product, action="reviewed", approval_status=product.approval_status),
    )


def notify_product_stock_status(product, *, active: bool) -> Notification:
    if active:
        message = f"'{product.name}' is back in stock and visible again."
    else:
        message = f"'{product.name}' is out of stock and has been deactivated."
    return send_notification_to_user(
        product.vendor,
        message,
        ntype=NotificationType.INVENTORY,
        meta_data=_product_meta(product, is_active=active),
    )


def notify_low_stock(variant) -> Notification:
    product = variant.product
    return send_notification_to_user(
        product.vendor,
        f"Only {variant.stock} left of '{product.name}' ({variant.color}/{variant.size}).",
        ntype=NotificationType.INVENTORY,
        meta_data=_product_meta(product, sku=variant.sku, stock=variant.stock),
    )


# ---------------------------------------------
# Orders
# ---------------------------------------------
def _order_meta(order, **extras) -> Dict[str, Any]:
    meta = {
        "order_id": order.id,
        "order_number": order.order_number,
        "order_status": order.order_status,
        "final_amount": str(order.final_amount),
        "customer_id": str(order.customer_id),
    }
    meta.update(extras)
    return meta


def _order_sellers(order):
    return User.objects.filter(sold_order_items__order=order).distinct()


def notify_new_order(order) -> None:
    meta = _order_meta(order)
    notify_admins(
        f"New order #{order.order_number} placed by {order.customer.email}.",
        ntype=NotificationType.ORDER,
        sender=order.customer,
        meta_data=meta,
    )
    for seller in _order_sellers(order):
        send_notification_to_user(
            seller,
            f"You have a new order #{order.order_number}.",
            ntype=NotificationType.ORDER,
            sender=order.customer,
            meta_data=meta,
        )
    logger.info("New order notifications sent for %s", order.order_number)


def notify_order_cancelled(order, cancelled_by: Optional[User] = None) -> None:
    meta = _order_meta(order, reason=order.cancellation_reason)
    if cancelled_by is None or cancelled_by.pk != order.customer_id:
        send_notification_to_user(
            order.customer,
            f"Your order #{order.order_number} has been cancelled.",
            ntype=NotificationType.ORDER,
            sender=cancelled_by,
            meta_data=meta,
        )
    for seller in _order_sellers(order):
        send_notification_to_user(
            seller,
            f"Order #{order.order_number} was cancelled.",
            ntype=NotificationType.ORDER,
            sender=cancelled_by,
            meta_data=meta,
        )
    notify_admins(
        f"Order #{order.order_number} was cancelled.",
        ntype=NotificationType.ORDER,
        sender=cancelled_by,
        meta_data=meta,
    )


def notify_order_status_changed(order, changed_by: Optional[User] = None) -> Notification:
    return send_notification_to_user(
        order.customer,
        f"Your order #{order.order_number} is now {order.get_order_status_display().lower()}.",
        ntype=NotificationType.ORDER,
        sender=changed_by,
        meta_data=_order_meta(order),
    )


def notify_return_requested(order) -> None:
    notify_admins(
        f"Return requested for order #{order.order_number}.",
        ntype=NotificationType.REFUND,
        sender=order.customer,
        meta_data=_order_meta(order, reason=order.return_reason),
    )


def notify_refund_updated(order, processed_by: Optional[User] = None) -> Notification:
    return send_notification_to_user(
        order.customer,
        f"Refund for order #{order.order_number} is {order.refund_status}.",
        ntype=NotificationType.REFUND,
        sender=processed_by,
        meta_data=_order_meta(order, refund_status=order.refund_status, refund_amount=str(order.refund_amount)),
    )


# ---------------------------------------------
# Payments
# ---------------------------------------------
def notify_order_payment_completed(order) -> None:
    meta = _order_meta(order, payment_id=order.payment_id, payment_status=order.payment_status)
    send_notification_to_user(
        order.customer,
        f"Your payment for order #{order.order_number} was successful.",
        ntype=NotificationType.PAYMENT,
        meta_data=meta,
    )
    for seller in _order_sellers(order):
        send_notification_to_user(
            seller,
            f"Order #{order.order_number} has been paid.",
            ntype=NotificationType.PAYMENT,
            sender=order.customer,
            meta_data=meta,
        )


def notify_order_payment_failed(order) -> Notification:
    return send_notification_to_user(
        order.customer,
        f"Your payment for order #{order.order_number} failed or expired.",
        ntype=NotificationType.PAYMENT,
        meta_data=_order_meta(order, payment_status=order.payment_status),
    )
