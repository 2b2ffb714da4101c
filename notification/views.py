from rest_framework.decorators import api_view, permission_classes
from rest_framework.generics import DestroyAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django.shortcuts import get_object_or_404

from common.pagination import StandardResultsSetPagination
from notification.models import Notification
from notification.serializers import NotificationSerializer


def _paginated(request, qs):
    paginator = StandardResultsSetPagination()
    page = paginator.paginate_queryset(qs, request)
    return paginator.get_paginated_response(NotificationSerializer(page, many=True).data)


# ----------------------------
# Notification List
# ----------------------------
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def notification_list(request):
    qs = request.user.notifications.select_related("sender", "user")
    ntype = request.query_params.get("type")
    if ntype:
        qs = qs.filter(meta_data__type=ntype)
    return _paginated(request, qs.order_by("-event_time"))


# ----------------------------
# Unseen Notification List
# ----------------------------
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def unseen_notification_list(request):
    qs = request.user.notifications.filter(seen=False).select_related("sender", "user")
    return _paginated(request, qs.order_by("-event_time"))


# ----------------------------
# Mark Notification as Seen
# ----------------------------
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def mark_notification_seen(request, pk):
    notification = get_object_or_404(Notification, pk=pk, user=request.user)
    if not notification.seen:
        notification.seen = True
        notification.save(update_fields=["seen"])
    return Response(NotificationSerializer(notification).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def mark_all_notifications_seen(request):
    updated = request.user.notifications.filter(seen=False).update(seen=True)
    return Response({"updated": updated})


# ----------------------------
# Delete Notification
# ----------------------------
class NotificationDeleteAPIView(DestroyAPIView):
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Notification.objects.none()
        return self.request.user.notifications.all()
