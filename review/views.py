from django.db.models import Avg, Count
from rest_framework import viewsets, permissions, status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response

from review.models import Review
from review.serializers import ReviewSerializer
from orders.models import OrderItem
from orders.enums import OrderItemStatus
from users.permissions import IsCustomer, is_admin_user, is_vendor_user


class ReviewViewSet(viewsets.ModelViewSet):
    serializer_class = ReviewSerializer
    permission_classes = [permissions.IsAuthenticatedOrReadOnly]

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Review.objects.none()
        qs = Review.objects.select_related("user", "product")
        user = self.request.user
        if is_admin_user(user):
            return qs
        if is_vendor_user(user):
            return qs.filter(product__vendor=user)
        if user.is_authenticated and self.request.method not in permissions.SAFE_METHODS:
            return qs.filter(user=user)
        return qs.filter(product__is_active=True)

    def perform_create(self, serializer):
        if not IsCustomer().has_permission(self.request, self):
            raise PermissionDenied("Only customers can review products.")
        product = serializer.validated_data["product"]
        verified = OrderItem.objects.filter(
            order__customer=self.request.user,
            product=product,
            status=OrderItemStatus.DELIVERED,
        ).exists()
        serializer.save(user=self.request.user, is_verified_purchase=verified)

    def perform_destroy(self, instance):
        if instance.user_id != self.request.user.id and not is_admin_user(self.request.user):
            raise PermissionDenied("You can only delete your own reviews.")
        instance.delete()

    @action(detail=False, methods=["get"], url_path=r"product/(?P<product_id>[0-9]+)",
            permission_classes=[permissions.AllowAny])
    def product_reviews(self, request, product_id=None):
        reviews = Review.objects.filter(product_id=product_id).select_related("user", "product")
        stats = reviews.aggregate(average_rating=Avg("rating"), review_count=Count("id"))
        distribution = {str(r): 0 for r in range(1, 6)}
        for row in reviews.values("rating").annotate(n=Count("id")):
            distribution[str(row["rating"])] = row["n"]
        return Response({
            "average_rating": round(stats["average_rating"] or 0, 1),
            "review_count": stats["review_count"],
            "distribution": distribution,
            "reviews": self.get_serializer(reviews, many=True).data,
        }, status=status.HTTP_200_OK)
