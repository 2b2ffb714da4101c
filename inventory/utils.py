# inventory/utils.py
import logging
from contextlib import nullcontext

from django.conf import settings
from django.db import connection, transaction
from django.db.models import Sum, Q
from django.db.models.functions import Coalesce

from products.models import Product, ProductVariant
from inventory.models import StockMovement
from inventory.enums import StockOperation, StockAlertSeverity
from orders.enums import OrderItemStatus
from notification.utils import notify_product_stock_status, notify_low_stock

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {
    StockAlertSeverity.OUT_OF_STOCK: 0,
    StockAlertSeverity.CRITICAL: 1,
    StockAlertSeverity.LOW: 2,
}


class InventoryError(ValueError):
    pass


class ProductNotFound(InventoryError):
    def __init__(self, message="Product not found"):
        super().__init__(message)


class VariantNotFound(InventoryError):
    def __init__(self, message="Product variant not found"):
        super().__init__(message)


class InsufficientStock(InventoryError):
    def __init__(self, available, requested):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock. Available: {available}, Requested: {requested}")


def low_stock_threshold():
    return getattr(settings, "LOW_STOCK_THRESHOLD", 10)


def critical_stock_threshold():
    return getattr(settings, "CRITICAL_STOCK_THRESHOLD", 5)


def transactions_supported():
    return connection.features.supports_transactions


def stock_transaction():
    if transactions_supported():
        return transaction.atomic()
    return nullcontext()


def _variant_queryset():
    qs = ProductVariant.objects.select_related("product")
    if connection.features.has_select_for_update and connection.in_atomic_block:
        qs = qs.select_for_update()
    return qs


def sync_product_activation(product):
    """
    Deactivate a product whose variants are all out of stock and
    reactivate it once stock comes back. Returns the total stock.
    """
    total = product.variants.aggregate(total=Coalesce(Sum("stock"), 0))["total"]

    if total == 0 and product.is_active:
        product.is_active = False
        product.save(update_fields=["is_active", "updated_at"])
        logger.info("Product %s deactivated, total stock is 0", product.pk)
        notify_product_stock_status(product, active=False)
    elif total > 0 and not product.is_active:
        product.is_active = True
        product.save(update_fields=["is_active", "updated_at"])
        logger.info("Product %s reactivated, total stock is %s", product.pk, total)
        notify_product_stock_status(product, active=True)

    return total


def _record_movement(variant, operation, previous, reason, user):
    return StockMovement.objects.create(
        product_id=variant.product_id,
        variant=variant,
        sku=variant.sku,
        operation=operation,
        quantity=variant.stock - previous,
        previous_stock=previous,
        new_stock=variant.stock,
        reason=reason or "",
        performed_by=user if getattr(user, "is_authenticated", False) else None,
    )


def record_stock_set(variant, previous, reason="", user=None):
    """Log an absolute stock level written outside update_stock."""
    return _record_movement(variant, StockOperation.SET, previous, reason, user)


def update_stock(product_id, variant_id, quantity, operation, reason="", user=None):
    """
    Increase or decrease the stock of one variant and keep the product's
    active flag in line with its total stock.
    """
    with stock_transaction():
        return _update_stock(product_id, variant_id, quantity, operation, reason, user)


def _update_stock(product_id, variant_id, quantity, operation, reason, user):
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise InventoryError("Quantity must be an integer")
    if quantity <= 0:
        raise InventoryError("Quantity must be greater than 0")
    if operation not in (StockOperation.INCREASE, StockOperation.DECREASE):
        raise InventoryError(f"Invalid stock operation: {operation}")

    if not Product.objects.filter(pk=product_id).exists():
        raise ProductNotFound()

    try:
        variant = _variant_queryset().get(pk=variant_id, product_id=product_id)
    except ProductVariant.DoesNotExist:
        raise VariantNotFound()

    previous = variant.stock
    if operation == StockOperation.DECREASE:
        if previous < quantity:
            raise InsufficientStock(previous, quantity)
        variant.stock = previous - quantity
    else:
        variant.stock = previous + quantity

    variant.save(update_fields=["stock", "updated_at"])
    _record_movement(variant, operation, previous, reason, user)

    logger.info(
        "Stock %s for variant %s (%s): %s -> %s. Reason: %s",
        operation, variant.pk, variant.sku, previous, variant.stock, reason or "-",
    )

    if operation == StockOperation.DECREASE and 0 < variant.stock <= low_stock_threshold() < previous:
        notify_low_stock(variant)

    sync_product_activation(variant.product)
    return variant


def _apply_batch(items, operation, reason, user):
    return [
        _update_stock(
            item["product_id"], item["variant_id"], item["quantity"], operation, reason, user,
        )
        for item in items
    ]


def _apply_batch_without_transaction(items, operation, reason, user):
    # Undo what was already applied when a later item fails.
    reverse = StockOperation.INCREASE if operation == StockOperation.DECREASE else StockOperation.DECREASE
    applied = []
    try:
        for item in items:
            update_stock(
                item["product_id"], item["variant_id"], item["quantity"], operation,
                reason=reason, user=user,
            )
            applied.append(item)
    except InventoryError:
        for item in reversed(applied):
            update_stock(
                item["product_id"], item["variant_id"], item["quantity"], reverse,
                reason=f"Rollback: {reason}", user=user,
            )
        raise


def _run_stock_batch(items, operation, reason, user):
    if transactions_supported():
        with transaction.atomic():
            _apply_batch(items, operation, reason, user)
        return

    logger.warning(
        "Database does not support transactions, applying %s for %d items without one",
        operation, len(items),
    )
    _apply_batch_without_transaction(items, operation, reason, user)


def reserve_stock(items, reason="Order placed", user=None):
    """Decrease stock for every item, all or nothing."""
    _run_stock_batch(items, StockOperation.DECREASE, reason, user)
    logger.info("Reserved stock for %d items", len(items))


def release_stock(items, reason="Order cancelled", user=None):
    """Give stock back for every item, all or nothing."""
    _run_stock_batch(items, StockOperation.INCREASE, reason, user)
    logger.info("Released stock for %d items", len(items))


def check_stock(items):
    unavailable = []
    for item in items:
        requested = int(item["quantity"])
        variant = ProductVariant.objects.filter(
            pk=item["variant_id"], product_id=item["product_id"]
        ).only("stock").first()
        available = variant.stock if variant else 0
        if available < requested:
            unavailable.append({
                "product_id": item["product_id"],
                "variant_id": item["variant_id"],
                "requested": requested,
                "available": available,
            })
    return {"in_stock": not unavailable, "unavailable_items": unavailable}


def get_low_stock_alerts(vendor=None):
    low = low_stock_threshold()
    critical = critical_stock_threshold()

    variants = ProductVariant.objects.select_related("product").filter(
        product__is_active=True, stock__lte=low
    )
    if vendor is not None:
        variants = variants.filter(product__vendor=vendor)

    alerts = []
    for variant in variants:
        if variant.stock == 0:
            severity = StockAlertSeverity.OUT_OF_STOCK
        elif variant.stock <= critical:
            severity = StockAlertSeverity.CRITICAL
        else:
            severity = StockAlertSeverity.LOW
        alerts.append({
            "product_id": variant.product_id,
            "product_name": variant.product.name,
            "variant_id": variant.pk,
            "sku": variant.sku,
            "color": variant.color,
            "size": variant.size,
            "current_stock": variant.stock,
            "threshold": low,
            "severity": severity.value,
        })

    alerts.sort(key=lambda a: (SEVERITY_ORDER[StockAlertSeverity(a["severity"])], a["current_stock"]))
    return alerts


def get_inventory_report(vendor=None):
    low = low_stock_threshold()
    critical = critical_stock_threshold()

    products = Product.objects.all()
    variants = ProductVariant.objects.all()
    if vendor is not None:
        products = products.filter(vendor=vendor)
        variants = variants.filter(product__vendor=vendor)

    totals = variants.aggregate(
        total_stock=Coalesce(Sum("stock"), 0),
    )

    top_variants = (
        variants.select_related("product")
        .annotate(
            units_sold=Coalesce(
                Sum("order_items__quantity", filter=~Q(order_items__status=OrderItemStatus.CANCELLED)), 0
            )
        )
        .order_by("-units_sold", "-stock")[:10]
    )

    return {
        "total_products": products.count(),
        "active_products": products.filter(is_active=True).count(),
        "total_variants": variants.count(),
        "total_stock": totals["total_stock"],
        "low_stock_items": variants.filter(stock__gt=critical, stock__lte=low).count(),
        "critical_stock_items": variants.filter(stock__gt=0, stock__lte=critical).count(),
        "out_of_stock_items": variants.filter(stock=0).count(),
        "top_variants": [
            {
                "product_id": v.product_id,
                "product_name": v.product.name,
                "variant_id": v.pk,
                "sku": v.sku,
                "stock": v.stock,
                "units_sold": v.units_sold,
            }
            for v in top_variants
        ],
    }


def bulk_update_stock(updates, reason="Bulk stock update", user=None, vendor=None):
    """
    Set absolute stock levels by SKU. A failing entry is reported and the
    rest still go through.
    """
    successful = []
    failed = []

    for entry in updates:
        sku = entry.get("sku")
        try:
            new_stock = max(0, int(entry.get("new_stock")))
        except (TypeError, ValueError):
            failed.append({"sku": sku, "error": "new_stock must be an integer"})
            continue

        try:
            with stock_transaction():
                variants = _variant_queryset().filter(sku=sku)
                if vendor is not None:
                    variants = variants.filter(product__vendor=vendor)
                variant = variants.first()
                if variant is None:
                    raise VariantNotFound(f"Variant with SKU {sku} not found")

                previous = variant.stock
                variant.stock = new_stock
                variant.save(update_fields=["stock", "updated_at"])
                record_stock_set(variant, previous, entry.get("reason") or reason, user)
                sync_product_activation(variant.product)
        except InventoryError as e:
            failed.append({"sku": sku, "error": str(e)})
            continue

        logger.info("Bulk stock update for %s: %s -> %s", sku, previous, new_stock)
        successful.append({"sku": sku, "previous_stock": previous, "new_stock": new_stock})

    return {"successful": successful, "failed": failed}


def get_stock_history(product_id, variant_id=None, limit=50):
    movements = StockMovement.objects.filter(product_id=product_id).select_related("performed_by")
    if variant_id:
        movements = movements.filter(variant_id=variant_id)
    return movements[:limit]
