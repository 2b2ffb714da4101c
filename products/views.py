import logging

from django.db.models import F
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import viewsets, permissions, status, filters
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend
from drf_yasg.utils import swagger_auto_schema

from products.models import Product
from products.enums import ApprovalStatus
from products.filters import ProductFilter
from products.serializers import (
    ProductSerializer,
    ProductListSerializer,
    ProductReviewActionSerializer,
    BulkProductStatusSerializer,
    BulkProductDeleteSerializer,
)
from products.utils import submit_for_approval, set_approval_status
from users.permissions import IsRoleAdmin, is_admin_user, is_vendor_user

logger = logging.getLogger(__name__)


class IsVendorOrAdminOwner(permissions.BasePermission):

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return is_admin_user(request.user) or is_vendor_user(request.user)

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return is_admin_user(request.user) or obj.vendor_id == request.user.id


# -------------------
# Product
# -------------------
class ProductViewSet(viewsets.ModelViewSet):
    serializer_class = ProductSerializer
    permission_classes = [IsVendorOrAdminOwner]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = ProductFilter
    search_fields = ["name", "description", "brand"]
    ordering_fields = ["price", "created_at", "sales_count", "view_count", "name"]
    ordering = ["-created_at"]

    def get_serializer_class(self):
        if self.action in ("list", "review_queue"):
            return ProductListSerializer
        return ProductSerializer

    def get_queryset(self):
        qs = Product.objects.select_related("vendor", "category").prefetch_related("variants")
        user = self.request.user

        if is_admin_user(user):
            return qs
        if is_vendor_user(user):
            return qs.filter(vendor=user)
        return qs.visible()

    def perform_create(self, serializer):
        user = self.request.user
        if is_admin_user(user):
            product = serializer.save(
                vendor=user,
                approval_status=ApprovalStatus.APPROVED,
                reviewed_by=user,
                reviewed_at=timezone.now(),
            )
            logger.info("Admin %s created product %s", user.pk, product.pk)
            return
        product = serializer.save(vendor=user)
        submit_for_approval(product)

    def perform_update(self, serializer):
        product = serializer.save()
        # any vendor edit goes back through review
        if is_vendor_user(self.request.user) and product.approval_status != ApprovalStatus.PENDING:
            submit_for_approval(product)

    def perform_destroy(self, instance):
        if instance.order_items.exists():
            raise ValidationError("This product has been ordered and cannot be deleted.")
        logger.info("Product %s deleted by %s", instance.pk, self.request.user.pk)
        instance.delete()

    def retrieve(self, request, *args, **kwargs):
        product = self.get_object()
        if product.vendor_id != request.user.id:
            Product.objects.filter(pk=product.pk).update(view_count=F("view_count") + 1)
            product.refresh_from_db(fields=["view_count"])
        return Response(self.get_serializer(product).data)

    @action(detail=False, methods=["get"], url_path=r"slug/(?P<slug>[-\w]+)")
    def by_slug(self, request, slug=None):
        product = get_object_or_404(self.get_queryset(), slug=slug)
        return Response(ProductSerializer(product, context=self.get_serializer_context()).data)

    @action(detail=False, methods=["get"])
    def featured(self, request):
        qs = Product.objects.visible().filter(is_featured=True).order_by("-sales_count")[:20]
        return Response(ProductListSerializer(qs, many=True).data)

    @action(detail=False, methods=["get"])
    def trending(self, request):
        qs = Product.objects.visible().filter(is_trending=True).order_by("-view_count")[:20]
        return Response(ProductListSerializer(qs, many=True).data)

    # -------- Approval --------
    def _review(self, request, approval_status):
        product = self.get_object()
        serializer = ProductReviewActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            set_approval_status(product, approval_status, request.user, serializer.validated_data["comments"])
        except ValueError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response({
            "detail": f"Product {product.get_approval_status_display().lower()}.",
            "product": ProductSerializer(product, context=self.get_serializer_context()).data,
        })

    @swagger_auto_schema(request_body=ProductReviewActionSerializer)
    @action(detail=True, methods=["post"], permission_classes=[IsRoleAdmin])
    def approve(self, request, pk=None):
        return self._review(request, ApprovalStatus.APPROVED)

    @swagger_auto_schema(request_body=ProductReviewActionSerializer)
    @action(detail=True, methods=["post"], permission_classes=[IsRoleAdmin])
    def reject(self, request, pk=None):
        return self._review(request, ApprovalStatus.REJECTED)

    @swagger_auto_schema(request_body=ProductReviewActionSerializer)
    @action(detail=True, methods=["post"], url_path="request-changes", permission_classes=[IsRoleAdmin])
    def request_changes(self, request, pk=None):
        return self._review(request, ApprovalStatus.NEEDS_CHANGES)

    @action(detail=False, methods=["get"], url_path="review-queue", permission_classes=[IsRoleAdmin])
    def review_queue(self, request):
        qs = self.filter_queryset(self.get_queryset()).filter(approval_status=ApprovalStatus.PENDING)
        qs = qs.order_by("submitted_for_approval_at", "created_at")
        page = self.paginate_queryset(qs)
        return self.get_paginated_response(self.get_serializer(page, many=True).data)

    @swagger_auto_schema(request_body=BulkProductStatusSerializer)
    @action(detail=False, methods=["post"], url_path="bulk-status", permission_classes=[IsRoleAdmin])
    def bulk_status(self, request):
        serializer = BulkProductStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        updated, failed = [], []
        for product in Product.objects.filter(pk__in=data["product_ids"]):
            try:
                set_approval_status(product, data["approval_status"], request.user, data["comments"])
                updated.append(product.pk)
            except ValueError as e:
                failed.append({"product_id": product.pk, "error": str(e)})

        return Response({"updated_count": len(updated), "updated": updated, "failed": failed})

    @swagger_auto_schema(request_body=BulkProductDeleteSerializer)
    @action(detail=False, methods=["post"], url_path="bulk-delete")
    def bulk_delete(self, request):
        if not (is_admin_user(request.user) or is_vendor_user(request.user)):
            raise PermissionDenied("Only vendors or admins can delete products.")
        serializer = BulkProductDeleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        deleted, skipped = [], []
        for product in self.get_queryset().filter(pk__in=serializer.validated_data["product_ids"]):
            if product.order_items.exists():
                skipped.append({"product_id": product.pk, "error": "Product has been ordered"})
                continue
            deleted.append(product.pk)
            product.delete()

        logger.info("Bulk deleted %d products", len(deleted))
        return Response({"deleted_count": len(deleted), "deleted": deleted, "skipped": skipped})
