from django.db import models


class CategoryLevel(models.IntegerChoices):
    CATEGORY = 1, "Category"
    SUBCATEGORY = 2, "Subcategory"
    SUB_SUBCATEGORY = 3, "Sub-subcategory"
