import uuid
from decimal import Decimal

from django.db import models
from django.db.models import Sum, Min, Max, Avg
from django.db.models.functions import Coalesce
from django.core.validators import MinValueValidator, RegexValidator
from django.core.exceptions import ValidationError
from django.utils.text import slugify
from django.conf import settings

from users.models import BaseModel
from common.enums import CategoryLevel
from products.enums import ApprovalStatus


User = settings.AUTH_USER_MODEL

color_code_validator = RegexValidator(
    regex=r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$",
    message="Color code must be a valid hex color (e.g. #FFF or #FFFFFF).",
)


class ProductQuerySet(models.QuerySet):
    def visible(self):
        return self.filter(is_active=True, approval_status=ApprovalStatus.APPROVED)

    def with_rating(self):
        return self.annotate(
            avg_rating=Coalesce(
                Avg("reviews__rating"), 0.0, output_field=models.FloatField()
            )
        )


class Product(BaseModel):
    vendor = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name="products",
    )

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField(blank=True)
    brand = models.CharField(max_length=120, blank=True)

    category = models.ForeignKey(
        "common.Category", on_delete=models.PROTECT, related_name="products",
    )
    sub_category = models.ForeignKey(
        "common.Category", on_delete=models.SET_NULL, null=True, blank=True,
        related_name="sub_category_products",
    )
    sub_sub_category = models.ForeignKey(
        "common.Category", on_delete=models.SET_NULL, null=True, blank=True,
        related_name="sub_sub_category_products",
    )

    tags = models.JSONField(default=list, blank=True)
    images = models.JSONField(default=list, blank=True)
    available_colors = models.JSONField(default=list, blank=True)
    available_sizes = models.JSONField(default=list, blank=True)

    # Cheapest variant, kept in sync by sync_from_variants()
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"),
                                validators=[MinValueValidator(Decimal("0.00"))])
    original_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"),
                                         validators=[MinValueValidator(Decimal("0.00"))])

    is_active = models.BooleanField(default=True)
    is_featured = models.BooleanField(default=False)
    is_trending = models.BooleanField(default=False)

    approval_status = models.CharField(
        max_length=20,
        choices=ApprovalStatus.choices,
        default=ApprovalStatus.PENDING,
    )
    review_comments = models.TextField(blank=True)
    reviewed_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="reviewed_products",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    submitted_for_approval_at = models.DateTimeField(null=True, blank=True)

    sales_count = models.PositiveIntegerField(default=0)
    view_count = models.PositiveIntegerField(default=0)

    objects = ProductQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["slug"]),
            models.Index(fields=["vendor"]),
            models.Index(fields=["approval_status", "is_active"]),
            models.Index(fields=["brand"]),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        if self.category_id and self.category.level != CategoryLevel.CATEGORY:
            raise ValidationError({"category": "Product category must be a level 1 category."})
        if self.sub_category_id and self.sub_category.parent_category_id != self.category_id:
            raise ValidationError({"sub_category": "Subcategory does not belong to the selected category."})
        if self.sub_sub_category_id:
            if not self.sub_category_id:
                raise ValidationError({"sub_sub_category": "Select a subcategory first."})
            if self.sub_sub_category.parent_category_id != self.sub_category_id:
                raise ValidationError({"sub_sub_category": "Sub-subcategory does not belong to the selected subcategory."})

    def save(self, *args, **kwargs):
        if not self.slug:
            base = slugify(self.name) or str(uuid.uuid4())[:8]
            slug = base
            i = 1
            while Product.objects.filter(slug=slug).exclude(pk=self.pk).exists():
                slug = f"{base}-{i}"
                i += 1
            self.slug = slug
        super().save(*args, **kwargs)

    @property
    def is_visible(self):
        return self.is_active and self.approval_status == ApprovalStatus.APPROVED

    @property
    def total_stock(self):
        return self.variants.aggregate(total=Sum("stock"))["total"] or 0

    @property
    def min_price(self):
        return self.variants.aggregate(v=Min("price"))["v"] or self.price

    @property
    def max_price(self):
        return self.variants.aggregate(v=Max("price"))["v"] or self.price

    @property
    def discount_percentage(self):
        if not self.original_price or self.original_price <= self.price:
            return 0
        return int(round((self.original_price - self.price) / self.original_price * 100))

    @property
    def average_rating(self):
        avg = getattr(self, "avg_rating", None)
        if avg is None:
            avg = self.reviews.aggregate(avg=Avg("rating"))["avg"] or 0
        return round(float(avg), 1)

    @property
    def primary_image(self):
        if self.images:
            return self.images[0]
        for variant in self.variants.all():
            if variant.images:
                return variant.images[0]
        return None

    def sync_from_variants(self):
        """Recompute price and available options from the variants."""
        variants = list(self.variants.order_by("price", "pk"))
        if variants:
            cheapest = variants[0]
            self.price = cheapest.price
            self.original_price = cheapest.original_price
            self.available_colors = sorted({v.color for v in variants if v.color})
            self.available_sizes = sorted({v.size for v in variants if v.size})
        self.save(update_fields=["price", "original_price", "available_colors", "available_sizes", "updated_at"])
        return self


class ProductVariant(BaseModel):
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="variants")
    color = models.CharField(max_length=60)
    color_code = models.CharField(max_length=7, blank=True, validators=[color_code_validator])
    size = models.CharField(max_length=30)
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.00"))])
    original_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.00"))])
    stock = models.PositiveIntegerField(default=0)
    sku = models.CharField(max_length=64, unique=True, blank=True)
    images = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["price", "id"]
        indexes = [models.Index(fields=["sku"]), models.Index(fields=["product", "stock"])]

    def __str__(self):
        return f"{self.product.name} - {self.color}/{self.size}"

    def clean(self):
        if self.price is not None and self.original_price is not None and self.price > self.original_price:
            raise ValidationError({"price": "Selling price cannot be greater than original price."})

    def save(self, *args, **kwargs):
        if not self.sku:
            base = slugify(self.product.name)[:20].upper() or "SKU"
            self.sku = f"{base}-{slugify(self.color)[:3].upper()}-{slugify(self.size).upper()}-{uuid.uuid4().hex[:6].upper()}"
        super().save(*args, **kwargs)

    @property
    def discount_percentage(self):
        if not self.original_price or self.original_price <= self.price:
            return 0
        return int(round((self.original_price - self.price) / self.original_price * 100))


class ProductSpecification(models.Model):
    product = models.OneToOneField(Product, on_delete=models.CASCADE, related_name="specification")

    fabric = models.CharField(max_length=255, blank=True)
    fit = models.CharField(max_length=100, blank=True)
    wash_care = models.CharField(max_length=255, blank=True)
    material = models.CharField(max_length=255, blank=True)
    capacity = models.CharField(max_length=100, blank=True)
    microwave_safe = models.BooleanField(null=True, blank=True)
    dimensions = models.CharField(max_length=255, blank=True)
    weight = models.CharField(max_length=100, blank=True)

    def __str__(self):
        return f"Specs of {self.product.name}"
