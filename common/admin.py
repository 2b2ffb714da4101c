from django.contrib import admin

from common.models import Category, Wishlist


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "level", "parent_category", "is_active", "sort_order")
    list_filter = ("level", "is_active")
    search_fields = ("name", "slug")


admin.site.register(Wishlist)
