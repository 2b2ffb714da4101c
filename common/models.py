import uuid

from django.db import models
from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils.text import slugify

from users.models import BaseModel
from common.enums import CategoryLevel

User = settings.AUTH_USER_MODEL


class Category(BaseModel):
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField(blank=True)
    image = models.URLField(max_length=500, blank=True)
    parent_category = models.ForeignKey(
        "self",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="children",
    )
    level = models.PositiveSmallIntegerField(choices=CategoryLevel.choices, default=CategoryLevel.CATEGORY)
    is_active = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)

    class Meta:
        ordering = ["level", "sort_order", "name"]
        indexes = [
            models.Index(fields=["slug"]),
            models.Index(fields=["level", "is_active"]),
            models.Index(fields=["parent_category"]),
        ]
        constraints = [
            models.UniqueConstraint(fields=["name", "parent_category"], name="unique_category_name_per_parent"),
        ]
        verbose_name_plural = "categories"

    def __str__(self):
        return self.name

    @staticmethod
    def validate_hierarchy(level, parent):
        """
        Level 1 sits at the root, level 2 hangs off a level 1 node and
        level 3 hangs off a level 2 node.
        """
        if level == CategoryLevel.CATEGORY:
            if parent is not None:
                raise ValidationError({"parent_category": "Categories (level 1) cannot have a parent"})
            return

        if parent is None:
            raise ValidationError({"parent_category": "Only Categories (level 1) can have no parent"})

        if level == CategoryLevel.SUBCATEGORY and parent.level != CategoryLevel.CATEGORY:
            raise ValidationError({"parent_category": "Subcategory can only have a Category as parent"})

        if level == CategoryLevel.SUB_SUBCATEGORY and parent.level != CategoryLevel.SUBCATEGORY:
            raise ValidationError({"parent_category": "Sub-Subcategory can only have a Subcategory as parent"})

    def clean(self):
        self.validate_hierarchy(self.level, self.parent_category)

    def save(self, *args, **kwargs):
        self.clean()
        if not self.slug:
            base = slugify(self.name) or str(uuid.uuid4())[:8]
            if self.parent_category_id:
                base = f"{self.parent_category.slug}-{base}"
            slug = base
            i = 1
            while Category.objects.filter(slug=slug).exclude(pk=self.pk).exists():
                slug = f"{base}-{i}"
                i += 1
            self.slug = slug
        super().save(*args, **kwargs)

    def get_path(self):
        """Root-to-node chain, used for breadcrumbs."""
        path = []
        node = self
        while node is not None:
            path.append(node)
            node = node.parent_category
        return list(reversed(path))

    def has_products(self):
        return (
            self.products.exists()
            or self.sub_category_products.exists()
            or self.sub_sub_category_products.exists()
        )

    def descendant_ids(self, include_self=True, active_only=True):
        ids = [self.pk] if include_self else []
        frontier = [self.pk]
        while frontier:
            children = Category.objects.filter(parent_category_id__in=frontier)
            if active_only:
                children = children.filter(is_active=True)
            frontier = list(children.values_list("id", flat=True))
            ids.extend(frontier)
        return ids


class Wishlist(BaseModel):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="wishlists")
    product = models.ForeignKey("products.Product", on_delete=models.CASCADE, related_name="wishlisted_by")
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("user", "product")
        ordering = ["-added_at"]
        indexes = [models.Index(fields=["user", "product"])]

    def __str__(self):
        return f"{self.user.email} - {self.product.name}"
