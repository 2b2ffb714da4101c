# orders/views.py
import logging

from django.db.models import Q
from rest_framework import viewsets, generics, permissions, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.exceptions import PermissionDenied, NotFound
from django_filters.rest_framework import DjangoFilterBackend
from drf_yasg.utils import swagger_auto_schema

from orders.models import Order
from orders.enums import OrderStatus
from orders.serializers import (
    CartSerializer,
    CartItemSerializer,
    AddToCartSerializer,
    UpdateCartItemSerializer,
    CouponCodeSerializer,
    OrderSerializer,
    CreateOrderSerializer,
    CancelOrderSerializer,
    ReturnOrderSerializer,
    OrderStatusUpdateSerializer,
    BulkOrderStatusSerializer,
    RefundActionSerializer,
    PaymentConfirmSerializer,
    OrderReceiptSerializer,
)
from orders import utils as order_utils
from orders.utils import OrderError, CartError
from coupons import utils as coupon_utils
from coupons.utils import CouponError
from common.serializers import WishlistSerializer
from users.permissions import IsRoleAdmin, IsCustomer, is_admin_user, is_vendor_user

logger = logging.getLogger(__name__)


def orders_visible_to(user):
    if is_admin_user(user):
        return Order.objects.all()
    if is_vendor_user(user):
        return Order.objects.filter(items__seller=user).distinct()
    if user.is_authenticated:
        return Order.objects.filter(customer=user)
    return Order.objects.none()


def _error(e, code=status.HTTP_400_BAD_REQUEST):
    return Response({"error": str(e)}, status=code)


# -------- Cart ViewSet --------
class CartViewSet(viewsets.ViewSet):
    permission_classes = [IsCustomer]

    def _cart_response(self, request, status_code=status.HTTP_200_OK):
        cart = order_utils.get_or_create_cart(request.user)
        return Response(CartSerializer(cart).data, status=status_code)

    def list(self, request):
        return self._cart_response(request)

    @swagger_auto_schema(request_body=AddToCartSerializer, responses={201: CartSerializer})
    @action(detail=False, methods=["post"])
    def add(self, request):
        serializer = AddToCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order_utils.add_to_cart(
                request.user,
                serializer.validated_data["product_id"],
                serializer.validated_data["variant_id"],
                serializer.validated_data["size"],
                serializer.validated_data["quantity"],
            )
        except CartError as e:
            return _error(e)
        return self._cart_response(request, status.HTTP_201_CREATED)

    @swagger_auto_schema(method="patch", request_body=UpdateCartItemSerializer, responses={200: CartItemSerializer})
    @action(detail=False, methods=["patch", "delete"], url_path=r"items/(?P<item_id>[0-9]+)")
    def item(self, request, item_id=None):
        try:
            if request.method == "DELETE":
                order_utils.remove_cart_item(request.user, item_id)
                return self._cart_response(request)

            serializer = UpdateCartItemSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            item = order_utils.update_cart_item(
                request.user,
                item_id,
                quantity=serializer.validated_data.get("quantity"),
                is_selected=serializer.validated_data.get("is_selected"),
            )
        except CartError as e:
            return _error(e)
        return Response(CartItemSerializer(item).data)

    @action(detail=False, methods=["post"])
    def clear(self, request):
        order_utils.clear_cart(request.user)
        return self._cart_response(request)

    @action(detail=False, methods=["post"], url_path=r"items/(?P<item_id>[0-9]+)/move-to-wishlist")
    def move_to_wishlist(self, request, item_id=None):
        try:
            wishlist_item = order_utils.move_to_wishlist(request.user, item_id)
        except CartError as e:
            return _error(e)
        return Response(WishlistSerializer(wishlist_item, context={"request": request}).data)

    @swagger_auto_schema(request_body=CouponCodeSerializer)
    @action(detail=False, methods=["post"], url_path="apply-coupon")
    def apply_coupon(self, request):
        serializer = CouponCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = coupon_utils.apply_coupon(serializer.validated_data["code"], request.user)
        except CouponError as e:
            return _error(e)
        return Response({
            "message": result["message"],
            "discount": result["discount"],
            "final_amount": result["final_amount"],
            "cart": CartSerializer(order_utils.get_or_create_cart(request.user)).data,
        })

    @action(detail=False, methods=["post"], url_path="remove-coupon")
    def remove_coupon(self, request):
        try:
            result = coupon_utils.remove_coupon(request.user)
        except CouponError as e:
            return _error(e, status.HTTP_404_NOT_FOUND)
        return Response({"message": result["message"], "cart": CartSerializer(request.user.cart).data})

    @action(detail=False, methods=["get"])
    def summary(self, request):
        cart = order_utils.get_or_create_cart(request.user)
        return Response(order_utils.calculate_cart_totals(cart))


# -------- Orders --------
class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = OrderSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["order_status", "payment_status", "payment_method", "refund_status"]

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Order.objects.none()
        queryset = orders_visible_to(self.request.user).select_related("customer").prefetch_related(
            "items__product", "items__variant"
        )

        start_date = self.request.query_params.get("start_date")
        end_date = self.request.query_params.get("end_date")
        if start_date:
            queryset = queryset.filter(created_at__date__gte=start_date)
        if end_date:
            queryset = queryset.filter(created_at__date__lte=end_date)

        search = self.request.query_params.get("search")
        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search) | Q(customer__email__icontains=search)
            )
        return queryset.order_by("-created_at")

    @swagger_auto_schema(request_body=CreateOrderSerializer, responses={201: OrderSerializer})
    def create(self, request):
        if not IsCustomer().has_permission(request, self):
            raise PermissionDenied("Only customers can place orders.")
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = order_utils.create_order_from_cart(
                request.user,
                shipping_address=serializer.validated_data["shipping_address"],
                payment_method=serializer.validated_data["payment_method"],
                billing_address=serializer.validated_data.get("billing_address"),
                notes=serializer.validated_data.get("notes", ""),
            )
        except OrderError as e:
            return _error(e)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def _own_order(self, request):
        order = self.get_object()
        if order.customer_id != request.user.id and not is_admin_user(request.user):
            raise PermissionDenied("You can only manage your own orders.")
        return order

    @swagger_auto_schema(request_body=CancelOrderSerializer, responses={200: OrderSerializer})
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        order = self._own_order(request)
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = order_utils.cancel_order(order, user=request.user, reason=serializer.validated_data["reason"])
        except OrderError as e:
            return _error(e)
        return Response(OrderSerializer(order).data)

    @swagger_auto_schema(request_body=ReturnOrderSerializer, responses={200: OrderSerializer})
    @action(detail=True, methods=["post"], url_path="return")
    def request_return(self, request, pk=None):
        order = self._own_order(request)
        serializer = ReturnOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = order_utils.request_return(order, serializer.validated_data["reason"])
        except OrderError as e:
            return _error(e)
        return Response(OrderSerializer(order).data)

    @swagger_auto_schema(request_body=OrderStatusUpdateSerializer, responses={200: OrderSerializer})
    @action(detail=True, methods=["patch"], url_path="status")
    def update_status(self, request, pk=None):
        if not (is_admin_user(request.user) or is_vendor_user(request.user)):
            raise PermissionDenied("Only admins and sellers can update order status.")
        order = self.get_object()
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["order_status"]
        tracking_id = serializer.validated_data.get("tracking_id")
        try:
            if is_admin_user(request.user):
                order = order_utils.update_order_status(
                    order, new_status, user=request.user, tracking_id=tracking_id,
                )
            else:
                order = order_utils.update_seller_status(
                    order, request.user, new_status, tracking_id=tracking_id,
                )
        except OrderError as e:
            return _error(e)
        order.refresh_from_db()
        return Response(OrderSerializer(order).data)

    @swagger_auto_schema(request_body=RefundActionSerializer, responses={200: OrderSerializer})
    @action(detail=True, methods=["post"], permission_classes=[IsRoleAdmin])
    def refund(self, request, pk=None):
        order = self.get_object()
        serializer = RefundActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = order_utils.process_refund(
                order,
                serializer.validated_data["action"],
                user=request.user,
                amount=serializer.validated_data.get("amount"),
                reason=serializer.validated_data["reason"],
            )
        except OrderError as e:
            return _error(e)
        return Response(OrderSerializer(order).data)

    @swagger_auto_schema(request_body=PaymentConfirmSerializer, responses={200: OrderSerializer})
    @action(detail=True, methods=["post"], url_path="confirm-payment", permission_classes=[IsRoleAdmin])
    def confirm_payment(self, request, pk=None):
        order = self.get_object()
        serializer = PaymentConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = order_utils.process_payment(order, serializer.validated_data["payment_id"])
        except OrderError as e:
            return _error(e)
        return Response(OrderSerializer(order).data)

    @action(detail=False, methods=["get"], url_path="refunds", permission_classes=[IsRoleAdmin])
    def refunds(self, request):
        qs = self.get_queryset().filter(refund_status__isnull=False)
        refund_status = request.query_params.get("refund_status")
        if refund_status:
            qs = qs.filter(refund_status=refund_status)
        page = self.paginate_queryset(qs)
        return self.get_paginated_response(self.get_serializer(page, many=True).data)


# -------- Order Receipt --------
class OrderReceiptView(generics.RetrieveAPIView):
    serializer_class = OrderReceiptSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Order.objects.none()
        return orders_visible_to(self.request.user)

    def get_object(self):
        order_number = self.kwargs.get("order_number")
        try:
            return self.get_queryset().get(order_number=order_number)
        except Order.DoesNotExist:
            raise NotFound("Receipt not found for this order.")


# -------- Bulk status --------
class BulkOrderStatusUpdateView(generics.GenericAPIView):
    serializer_class = BulkOrderStatusSerializer
    permission_classes = [IsRoleAdmin]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["order_status"]

        updated, failed = [], []
        for order in Order.objects.filter(id__in=serializer.validated_data["order_ids"]):
            try:
                order_utils.update_order_status(order, new_status, user=request.user)
                updated.append(order.id)
            except OrderError as e:
                failed.append({"order_id": order.id, "error": str(e)})

        missing = set(serializer.validated_data["order_ids"]) - set(updated) - {f["order_id"] for f in failed}
        failed.extend({"order_id": order_id, "error": "Order not found"} for order_id in sorted(missing))

        logger.info("Bulk status %s applied to %d orders", new_status, len(updated))
        return Response({"updated_count": len(updated), "updated": updated, "failed": failed})
