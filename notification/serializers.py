from rest_framework import serializers

from users.enums import UserRole
from notification.models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    sender_email = serializers.EmailField(source="sender.email", read_only=True)
    full_name = serializers.SerializerMethodField()
    meta_data = serializers.JSONField(required=False)

    class Meta:
        model = Notification
        fields = [
            "id",
            "sender_email",
            "event_time",
            "message",
            "seen",
            "path",
            "full_name",
            "meta_data",
        ]
        read_only_fields = ["id", "event_time"]

    def get_full_name(self, obj):
        """
        Sender (or owner) name prefixed with the role label,
        e.g. 'Vendor: Jane Doe'.
        """
        user = obj.sender or obj.user
        if not user:
            return None

        name = user.get_full_name() or user.email
        labels = {
            UserRole.VENDOR.value: "Vendor",
            UserRole.CUSTOMER.value: "Customer",
            UserRole.ADMIN.value: "Admin",
        }
        label = labels.get((user.role or "").lower())
        return f"{label}: {name}" if label else name
