import logging

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, NotFound
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema

from products.models import Product
from inventory import utils as inventory_utils
from inventory.utils import InventoryError, ProductNotFound, VariantNotFound
from inventory.serializers import (
    StockUpdateSerializer,
    StockCheckSerializer,
    BulkStockUpdateSerializer,
    StockMovementSerializer,
)
from users.permissions import IsVendorOrAdmin, is_admin_user

logger = logging.getLogger(__name__)


class InventoryViewSet(viewsets.ViewSet):
    """Stock management for admins and for vendors on their own products."""
    permission_classes = [IsVendorOrAdmin]

    def _vendor_scope(self, request):
        return None if is_admin_user(request.user) else request.user

    def _check_product_access(self, request, product_id):
        product = Product.objects.filter(pk=product_id).only("id", "vendor_id").first()
        if product is None:
            raise NotFound("Product not found")
        if not is_admin_user(request.user) and product.vendor_id != request.user.id:
            raise PermissionDenied("You can only manage stock of your own products.")
        return product

    @swagger_auto_schema(request_body=StockUpdateSerializer)
    @action(detail=False, methods=["post"], url_path="update-stock")
    def update_stock(self, request):
        serializer = StockUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        self._check_product_access(request, data["product_id"])

        try:
            variant = inventory_utils.update_stock(
                data["product_id"], data["variant_id"], data["quantity"], data["operation"],
                reason=data["reason"], user=request.user,
            )
        except (ProductNotFound, VariantNotFound) as e:
            return Response({"error": str(e)}, status=status.HTTP_404_NOT_FOUND)
        except InventoryError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        variant.product.refresh_from_db(fields=["is_active"])
        return Response({
            "message": "Stock updated successfully",
            "product_id": variant.product_id,
            "variant_id": variant.pk,
            "sku": variant.sku,
            "stock": variant.stock,
            "product_active": variant.product.is_active,
        })

    @swagger_auto_schema(request_body=StockCheckSerializer)
    @action(detail=False, methods=["post"], url_path="check", permission_classes=[])
    def check(self, request):
        serializer = StockCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(inventory_utils.check_stock(serializer.validated_data["items"]))

    @action(detail=False, methods=["get"])
    def alerts(self, request):
        alerts = inventory_utils.get_low_stock_alerts(vendor=self._vendor_scope(request))
        return Response({"count": len(alerts), "alerts": alerts})

    @action(detail=False, methods=["get"])
    def report(self, request):
        return Response(inventory_utils.get_inventory_report(vendor=self._vendor_scope(request)))

    @swagger_auto_schema(request_body=BulkStockUpdateSerializer)
    @action(detail=False, methods=["post"], url_path="bulk-update")
    def bulk_update(self, request):
        serializer = BulkStockUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = inventory_utils.bulk_update_stock(
            serializer.validated_data["updates"],
            reason=serializer.validated_data["reason"],
            user=request.user,
            vendor=self._vendor_scope(request),
        )
        logger.info(
            "Bulk stock update by %s: %d ok, %d failed",
            request.user.pk, len(result["successful"]), len(result["failed"]),
        )
        return Response(result)

    @action(detail=False, methods=["get"], url_path=r"history/(?P<product_id>[0-9]+)")
    def history(self, request, product_id=None):
        self._check_product_access(request, product_id)
        try:
            limit = min(int(request.query_params.get("limit", 50)), 200)
        except ValueError:
            limit = 50
        movements = inventory_utils.get_stock_history(
            product_id, variant_id=request.query_params.get("variant_id"), limit=limit,
        )
        return Response(StockMovementSerializer(movements, many=True).data)
