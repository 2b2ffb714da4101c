from decimal import Decimal, ROUND_HALF_UP

from django.db import models
from django.db.models import F
from django.utils import timezone
from django.core.validators import MinValueValidator, MaxValueValidator, RegexValidator
from django.core.exceptions import ValidationError

from users.models import BaseModel
from coupons.enums import DiscountType

code_validator = RegexValidator(
    regex=r"^[A-Z0-9]{3,20}$",
    message="Coupon code must be 3-20 upper-case letters or digits.",
)


class CouponQuerySet(models.QuerySet):
    def valid(self, now=None):
        now = now or timezone.now()
        return self.filter(
            is_active=True,
            valid_from__lte=now,
            valid_until__gte=now,
            used_count__lt=F("usage_limit"),
        )


class Coupon(BaseModel):
    code = models.CharField(max_length=20, unique=True, validators=[code_validator])
    description = models.CharField(max_length=500)
    discount_type = models.CharField(max_length=20, choices=DiscountType.choices)
    discount_value = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    min_order_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00"), validators=[MinValueValidator(Decimal("0"))]
    )
    max_discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(Decimal("0"))]
    )
    usage_limit = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    used_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField()
    applicable_categories = models.ManyToManyField("common.Category", blank=True, related_name="coupons")
    applicable_products = models.ManyToManyField("products.Product", blank=True, related_name="coupons")

    objects = CouponQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["is_active"]),
            models.Index(fields=["valid_from", "valid_until"]),
        ]

    def __str__(self):
        return self.code

    def clean(self):
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValidationError({"valid_until": "Valid until date must be after valid from date"})
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value is not None \
                and self.discount_value > 100:
            raise ValidationError({"discount_value": "Percentage discount cannot exceed 100%"})

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        if self.discount_type == DiscountType.FIXED:
            self.max_discount_amount = None
        self.clean()
        super().save(*args, **kwargs)

    @property
    def is_expired(self):
        return timezone.now() > self.valid_until

    @property
    def is_valid(self):
        now = timezone.now()
        return self.is_active and self.valid_from <= now <= self.valid_until and self.used_count < self.usage_limit

    @property
    def remaining_uses(self):
        return max(0, self.usage_limit - self.used_count)

    @property
    def usage_percentage(self):
        return round(self.used_count / self.usage_limit * 100) if self.usage_limit else 0

    def can_be_used(self, order_amount, category_ids=None, product_ids=None):
        """Return (valid, reason) for an order of `order_amount`."""
        if not self.is_active:
            return False, "Coupon is not active"

        now = timezone.now()
        if now < self.valid_from:
            return False, "Coupon is not yet valid"
        if now > self.valid_until:
            return False, "Coupon has expired"

        if self.used_count >= self.usage_limit:
            return False, "Coupon usage limit exceeded"

        if Decimal(str(order_amount)) < self.min_order_amount:
            return False, f"Minimum order amount of ₹{self.min_order_amount} required"

        allowed_categories = set(self.applicable_categories.values_list("id", flat=True))
        if allowed_categories:
            if not category_ids:
                return False, "Coupon not applicable to cart items"
            if not allowed_categories & {int(c) for c in category_ids}:
                return False, "Coupon not applicable to selected categories"

        allowed_products = set(self.applicable_products.values_list("id", flat=True))
        if allowed_products:
            if not product_ids:
                return False, "Coupon not applicable to cart items"
            if not allowed_products & {int(p) for p in product_ids}:
                return False, "Coupon not applicable to selected products"

        return True, None

    def calculate_discount(self, order_amount):
        amount = Decimal(str(order_amount))
        if self.discount_type == DiscountType.PERCENTAGE:
            discount = amount * self.discount_value / Decimal("100")
            if self.max_discount_amount and discount > self.max_discount_amount:
                discount = self.max_discount_amount
        else:
            discount = min(self.discount_value, amount)
        return discount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
