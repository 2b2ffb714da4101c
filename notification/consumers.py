import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer
from channels.db import database_sync_to_async

from notification.models import Notification
from notification.serializers import NotificationSerializer
from notification.utils import group_name_for_user

logger = logging.getLogger(__name__)


class NotificationConsumer(AsyncJsonWebsocketConsumer):
    async def connect(self):
        """
        Accept connection only for authenticated users
        and add them to their notification group.
        """
        await self.accept()
        user = self.scope.get("user")

        if user is None or not user.is_authenticated:
            await self.send_json({"error": "Unauthorized"})
            await self.close()
            return

        self.user = user
        self.room_group_name = group_name_for_user(user)
        logger.info("Websocket connected for %s in %s", user.email, self.room_group_name)

        await self.channel_layer.group_add(self.room_group_name, self.channel_name)
        await self.send_json({"type": "unseen_count", "count": await self.unseen_count()})

    async def disconnect(self, close_code):
        if hasattr(self, "room_group_name"):
            await self.channel_layer.group_discard(self.room_group_name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        """
        Client commands:
        {"type": "mark_seen", "id": <notification id>}
        {"type": "unseen_count"}
        """
        message_type = content.get("type")
        if message_type == "mark_seen":
            notification = await self.mark_seen(content.get("id"))
            if notification is None:
                await self.send_json({"error": "Notification not found"})
                return
            await self.send_json({"type": "notification_seen", "data": notification})
        elif message_type == "unseen_count":
            await self.send_json({"type": "unseen_count", "count": await self.unseen_count()})
        else:
            await self.send_json({"error": f"Unknown message type: {message_type}"})

    async def send_notification(self, event):
        await self.send_json({
            "type": "notification",
            "data": event.get("notification", {}),
        })

    @database_sync_to_async
    def unseen_count(self):
        return Notification.objects.filter(user=self.user, seen=False).count()

    @database_sync_to_async
    def mark_seen(self, pk):
        notification = Notification.objects.filter(pk=pk, user=self.user).first()
        if notification is None:
            return None
        if not notification.seen:
            notification.seen = True
            notification.save(update_fields=["seen"])
        return NotificationSerializer(notification).data
