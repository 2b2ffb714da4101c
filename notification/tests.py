from unittest import mock

from django.test import TestCase
from django.urls import reverse
from rest_framework import status

from main import factories
from main.test import AuthenticatedUserTestBase
from notification import utils as notification_utils
from notification.models import Notification
from notification.utils import NotificationType


class NotificationUtilsTests(TestCase):
    def test_group_names(self):
        customer = factories.CustomerFactory()
        vendor = factories.VendorFactory()
        admin = factories.AdminFactory()
        self.assertEqual(notification_utils.group_name_for_user(customer), f"notifications_user_{customer.id}")
        self.assertEqual(notification_utils.group_name_for_user(vendor), f"notifications_vendor_{vendor.id}")
        self.assertEqual(notification_utils.group_name_for_user(admin), f"notifications_admin_{admin.id}")

    def test_meta_data_defaults(self):
        meta = notification_utils.prepare_notification_meta_data(
            ntype=NotificationType.ORDER, extras={"order_number": "SP9000000001"}
        )
        self.assertEqual(meta, {"type": "order", "order_number": "SP9000000001", "order_status": None})

    @mock.patch("notification.utils.get_channel_layer")
    def test_push_happens_after_commit(self, get_layer):
        layer = mock.Mock()
        layer.group_send = mock.AsyncMock()
        get_layer.return_value = layer
        user = factories.CustomerFactory()

        with self.captureOnCommitCallbacks(execute=True):
            notification = notification_utils.send_notification_to_user(
                user, "Your order has shipped", ntype=NotificationType.ORDER,
            )
            layer.group_send.assert_not_called()

        group, event = layer.group_send.call_args.args
        self.assertEqual(group, f"notifications_user_{user.id}")
        self.assertEqual(event["type"], "send_notification")
        self.assertEqual(event["notification"]["id"], notification.id)

    @mock.patch("notification.utils.get_channel_layer")
    def test_push_failure_is_logged(self, get_layer):
        layer = mock.Mock()
        layer.group_send = mock.AsyncMock(side_effect=ConnectionError("redis down"))
        get_layer.return_value = layer

        with self.assertLogs("notification.utils", level="ERROR"):
            with self.captureOnCommitCallbacks(execute=True):
                notification_utils.send_notification_to_user(
                    factories.CustomerFactory(), "Hello", ntype=NotificationType.ORDER,
                )
        self.assertEqual(Notification.objects.count(), 1)

    def test_notify_admins(self):
        first, second = factories.AdminFactory(), factories.AdminFactory()
        factories.AdminFactory(is_active=False)
        notification_utils.notify_admins("New vendor product", ntype=NotificationType.PRODUCT)
        self.assertCountEqual(Notification.objects.values_list("user", flat=True), [first.id, second.id])

    @mock.patch("notification.utils.get_channel_layer")
    def test_each_admin_gets_one_push_for_their_own_row(self, get_layer):
        layer = mock.Mock()
        layer.group_send = mock.AsyncMock()
        get_layer.return_value = layer
        admins = [factories.AdminFactory() for _ in range(3)]

        with self.captureOnCommitCallbacks(execute=True):
            notification_utils.notify_admins("New vendor product", ntype=NotificationType.PRODUCT)

        pushes = {call.args[0]: call.args[1]["notification"]["id"] for call in layer.group_send.call_args_list}
        self.assertEqual(layer.group_send.call_count, 3)
        self.assertEqual(
            pushes,
            {
                f"notifications_admin_{admin.id}": Notification.objects.get(user=admin).id
                for admin in admins
            },
        )


class NotificationApiTests(AuthenticatedUserTestBase):
    def notify(self, message, ntype=NotificationType.ORDER, user=None):
        return notification_utils.send_notification_to_user(user or self.user, message, ntype=ntype)

    def test_list_and_filter_by_type(self):
        self.notify("Order placed")
        self.notify("Payment received", ntype=NotificationType.PAYMENT)
        self.notify("Not yours", user=factories.CustomerFactory())

        response = self.client.get(reverse("notification-list"))
        self.assertEqual(response.data["count"], 2)

        response = self.client.get(reverse("notification-list"), {"type": "payment"})
        self.assertEqual([n["message"] for n in response.data["results"]], ["Payment received"])

    def test_mark_seen(self):
        notification = self.notify("Order placed")
        self.notify("Order shipped")

        response = self.client.post(reverse("mark-notification-seen", args=[notification.id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["seen"])

        response = self.client.get(reverse("unseen-notification-list"))
        self.assertEqual([n["message"] for n in response.data["results"]], ["Order shipped"])

        response = self.client.post(reverse("mark-all-notifications-seen"))
        self.assertEqual(response.data, {"updated": 1})

    def test_cannot_touch_other_users_notifications(self):
        other = self.notify("Private", user=factories.CustomerFactory())
        response = self.client.post(reverse("mark-notification-seen", args=[other.id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.delete(reverse("delete-notification", args=[other.id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_delete(self):
        notification = self.notify("Order placed")
        response = self.client.delete(reverse("delete-notification", args=[notification.id]))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Notification.objects.exists())

    def test_requires_authentication(self):
        self.logout()
        response = self.client.get(reverse("notification-list"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
