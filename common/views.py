import logging

from django.shortcuts import get_object_or_404
from rest_framework import viewsets, permissions, filters, status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from common.models import Category, Wishlist
from common.enums import CategoryLevel
from common.serializers import CategorySerializer, CategoryBreadcrumbSerializer, WishlistSerializer
from users.permissions import IsAdminOrReadOnly, IsCustomer, is_admin_user

logger = logging.getLogger(__name__)


# -------------------
# Category
# -------------------
class CategoryViewSet(viewsets.ModelViewSet):
    serializer_class = CategorySerializer
    permission_classes = [IsAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['level', 'is_active', 'parent_category']
    search_fields = ['name', 'description']
    ordering_fields = ['level', 'sort_order', 'name', 'created_at']
    ordering = ['level', 'sort_order', 'name']

    def get_queryset(self):
        qs = Category.objects.select_related("parent_category")
        if not is_admin_user(self.request.user):
            qs = qs.filter(is_active=True)
        return qs

    def perform_create(self, serializer):
        category = serializer.save()
        logger.info("Category %s created at level %s", category.slug, category.level)

    def perform_destroy(self, instance):
        if instance.children.exists():
            raise ValidationError("Cannot delete category with subcategories.")
        if instance.has_products():
            raise ValidationError("Cannot delete category that has products.")
        instance.delete()

    @action(detail=False, methods=['get'])
    def tree(self, request):
        categories = list(
            Category.objects.filter(is_active=True).order_by('level', 'sort_order', 'name')
        )
        nodes = {
            c.id: {
                "id": c.id,
                "name": c.name,
                "slug": c.slug,
                "level": c.level,
                "image": c.image,
                "sort_order": c.sort_order,
                "children": [],
            }
            for c in categories
        }
        roots = []
        for c in categories:
            node = nodes[c.id]
            if c.parent_category_id is None:
                roots.append(node)
            elif c.parent_category_id in nodes:
                nodes[c.parent_category_id]["children"].append(node)
        return Response(roots)

    @action(detail=False, methods=['get'], url_path=r'level/(?P<level>[0-9]+)')
    def by_level(self, request, level=None):
        level = int(level)
        if level not in CategoryLevel.values:
            return Response({"error": "Level must be 1, 2 or 3"}, status=status.HTTP_400_BAD_REQUEST)
        qs = self.get_queryset().filter(level=level)
        parent = request.query_params.get('parent_category')
        if parent:
            qs = qs.filter(parent_category_id=parent)
        serializer = self.get_serializer(qs, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['get'])
    def path(self, request, pk=None):
        category = self.get_object()
        return Response(CategoryBreadcrumbSerializer(category.get_path(), many=True).data)

    @action(detail=False, methods=['get'], url_path=r'slug/(?P<slug>[-\w]+)')
    def by_slug(self, request, slug=None):
        category = get_object_or_404(self.get_queryset(), slug=slug)
        return Response(self.get_serializer(category).data)


# -------------------
# Wishlist
# -------------------
class WishlistViewSet(viewsets.ModelViewSet):
    serializer_class = WishlistSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ['get', 'post', 'delete']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False) or not self.request.user.is_authenticated:
            return Wishlist.objects.none()
        return Wishlist.objects.filter(user=self.request.user).select_related("product")

    def create(self, request, *args, **kwargs):
        if not IsCustomer().has_permission(request, self):
            raise PermissionDenied("Only customers can add to wishlist.")
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item, created = Wishlist.objects.get_or_create(
            user=request.user, product=serializer.validated_data['product']
        )
        return Response(
            self.get_serializer(item).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @action(detail=False, methods=['delete'], url_path=r'product/(?P<product_id>[0-9]+)')
    def remove_product(self, request, product_id=None):
        deleted, _ = self.get_queryset().filter(product_id=product_id).delete()
        if not deleted:
            return Response({"error": "Product not in wishlist"}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)
