# coupons/utils.py
import logging
from decimal import Decimal

from django.db.models import F, Q

from coupons.models import Coupon
from orders.models import Cart

logger = logging.getLogger(__name__)


class CouponError(ValueError):
    pass


def _cart_scope(cart):
    category_ids = set()
    product_ids = set()
    for item in cart.selected_items():
        product = item.product
        product_ids.add(product.id)
        for cat_id in (product.category_id, product.sub_category_id, product.sub_sub_category_id):
            if cat_id:
                category_ids.add(cat_id)
    return category_ids, product_ids


def validate_coupon(code, user):
    """
    Check `code` against the user's cart. Returns (coupon, discount) or
    raises CouponError with the reason.
    """
    code = (code or "").strip().upper()
    if not code:
        raise CouponError("Coupon code is required")

    coupon = Coupon.objects.filter(code=code).first()
    if coupon is None:
        raise CouponError("Invalid coupon code")

    cart = Cart.objects.filter(user=user).first()
    if cart is None or not cart.selected_items().exists():
        raise CouponError("Cart is empty")

    amount = cart.total_amount
    category_ids, product_ids = _cart_scope(cart)
    valid, reason = coupon.can_be_used(amount, category_ids, product_ids)
    if not valid:
        raise CouponError(reason)

    return coupon, coupon.calculate_discount(amount)


def apply_coupon(code, user):
    coupon, discount = validate_coupon(code, user)
    cart = Cart.objects.get(user=user)
    cart.applied_coupon = coupon.code
    cart.coupon_discount = discount
    cart.save(update_fields=["applied_coupon", "coupon_discount", "updated_at"])

    final_amount = max(Decimal("0.00"), cart.total_amount - discount)
    logger.info("Coupon %s applied to cart of user %s, discount %s", coupon.code, user.pk, discount)
    return {
        "coupon": coupon,
        "discount": discount,
        "final_amount": final_amount,
        "message": f"Coupon applied! You saved ₹{discount}",
    }


def remove_coupon(user):
    cart = Cart.objects.filter(user=user).first()
    if cart is None:
        raise CouponError("Cart not found")
    cart.clear_coupon()
    return {"message": "Coupon removed successfully"}


def revalidate_cart_coupon(cart):
    """
    Recompute the cart's coupon discount after its contents changed and
    drop the coupon when it no longer applies.
    """
    if not cart.applied_coupon:
        return cart
    coupon = Coupon.objects.filter(code=cart.applied_coupon).first()
    amount = cart.total_amount
    category_ids, product_ids = _cart_scope(cart)
    valid, reason = (False, "Coupon no longer exists") if coupon is None \
        else coupon.can_be_used(amount, category_ids, product_ids)
    if not valid:
        logger.info("Dropping coupon %s from cart %s: %s", cart.applied_coupon, cart.pk, reason)
        cart.clear_coupon()
        return cart
    cart.coupon_discount = coupon.calculate_discount(amount)
    cart.save(update_fields=["coupon_discount", "updated_at"])
    return cart


def get_available_coupons(user=None):
    """Currently valid coupons; scoped to the user's cart when one exists."""
    coupons = Coupon.objects.valid()
    cart = Cart.objects.filter(user=user).first() if user is not None else None
    if cart is None:
        return coupons

    category_ids, product_ids = _cart_scope(cart)
    return coupons.filter(
        (Q(applicable_categories__isnull=True) | Q(applicable_categories__in=category_ids))
        & (Q(applicable_products__isnull=True) | Q(applicable_products__in=product_ids))
    ).distinct()


def increment_usage(code):
    updated = Coupon.objects.filter(code=code).update(used_count=F("used_count") + 1)
    if updated:
        logger.info("Coupon %s usage incremented", code)
    return bool(updated)


def decrement_usage(code):
    updated = Coupon.objects.filter(code=code, used_count__gt=0).update(used_count=F("used_count") - 1)
    if updated:
        logger.info("Coupon %s usage decremented", code)
    return bool(updated)
