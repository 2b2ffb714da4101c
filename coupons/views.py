import logging

from django.utils import timezone
from rest_framework import viewsets, permissions, filters, status
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend
from drf_yasg.utils import swagger_auto_schema

from coupons.models import Coupon
from coupons.serializers import CouponSerializer, PublicCouponSerializer, CouponValidateSerializer
from coupons import utils as coupon_utils
from coupons.utils import CouponError
from users.permissions import IsRoleAdmin

logger = logging.getLogger(__name__)


class CouponViewSet(viewsets.ModelViewSet):
    queryset = Coupon.objects.prefetch_related("applicable_categories", "applicable_products")
    serializer_class = CouponSerializer
    permission_classes = [IsRoleAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ["is_active", "discount_type"]
    search_fields = ["code", "description"]
    ordering_fields = ["created_at", "valid_until", "used_count"]

    def get_queryset(self):
        qs = super().get_queryset()
        state = self.request.query_params.get("state")
        now = timezone.now()
        if state == "expired":
            qs = qs.filter(valid_until__lt=now)
        elif state == "valid":
            qs = qs.valid(now)
        return qs

    def perform_create(self, serializer):
        coupon = serializer.save()
        logger.info("Coupon %s created", coupon.code)

    @action(detail=False, methods=["get"], permission_classes=[permissions.IsAuthenticated])
    def available(self, request):
        coupons = coupon_utils.get_available_coupons(request.user)
        return Response(PublicCouponSerializer(coupons, many=True).data)

    @swagger_auto_schema(request_body=CouponValidateSerializer)
    @action(detail=False, methods=["post"], url_path="validate", permission_classes=[permissions.IsAuthenticated])
    def validate_code(self, request):
        serializer = CouponValidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            coupon, discount = coupon_utils.validate_coupon(serializer.validated_data["code"], request.user)
        except CouponError as e:
            return Response({"valid": False, "error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response({
            "valid": True,
            "discount": discount,
            "coupon": PublicCouponSerializer(coupon).data,
        })
