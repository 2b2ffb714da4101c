from django.db import models
from django.conf import settings

from inventory.enums import StockOperation


class StockMovement(models.Model):
    product = models.ForeignKey("products.Product", on_delete=models.CASCADE, related_name="stock_movements")
    variant = models.ForeignKey(
        "products.ProductVariant", on_delete=models.SET_NULL, null=True, blank=True,
        related_name="stock_movements",
    )
    sku = models.CharField(max_length=64, blank=True)
    operation = models.CharField(max_length=10, choices=StockOperation.choices)
    quantity = models.IntegerField(help_text="Signed change applied to the stock")
    previous_stock = models.PositiveIntegerField()
    new_stock = models.PositiveIntegerField()
    reason = models.CharField(max_length=255, blank=True)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="stock_movements",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["product", "created_at"])]

    def __str__(self):
        return f"{self.sku}: {self.previous_stock} -> {self.new_stock} ({self.reason})"
