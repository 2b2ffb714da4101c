import json
from decimal import Decimal
from unittest import mock

import stripe
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from main import factories
from main.test import AuthenticatedUserTestBase
from notification.models import Notification
from orders.enums import OrderStatus, PaymentStatus, PaymentMethod
from payments.models import Payment


class CheckoutTests(AuthenticatedUserTestBase):
    def setUp(self):
        super().setUp()
        self.order = factories.OrderItemFactory(order__customer=self.user).order

    @mock.patch("payments.views.create_checkout_session")
    def test_checkout_creates_pending_payment(self, create_session):
        create_session.return_value = mock.Mock(id="cs_test_1", url="https://checkout.stripe.com/pay/cs_test_1")

        response = self.client.post(
            reverse("checkout-checkout"), {"order_number": self.order.order_number}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["session_id"], "cs_test_1")
        self.assertEqual(response.data["final_amount"], "1020.00")
        payment = Payment.objects.get()
        self.assertEqual((payment.status, payment.amount), (PaymentStatus.PENDING, Decimal("1020.00")))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_method, PaymentMethod.STRIPE)

        success_url = create_session.call_args.kwargs["success_url"]
        self.assertTrue(success_url.endswith(f"?order_number={self.order.order_number}"))

    @mock.patch("payments.views.create_checkout_session")
    def test_paid_order_rejected(self, create_session):
        self.order.payment_status = PaymentStatus.COMPLETED
        self.order.save()
        response = self.client.post(
            reverse("checkout-checkout"), {"order_number": self.order.order_number}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        create_session.assert_not_called()

    def test_other_customers_order_is_404(self):
        other = factories.OrderFactory()
        response = self.client.post(reverse("checkout-checkout"), {"order_number": other.order_number}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    @mock.patch("payments.views.create_checkout_session", side_effect=stripe.error.StripeError("boom"))
    def test_stripe_failure_is_502(self, _create_session):
        response = self.client.post(
            reverse("checkout-checkout"), {"order_number": self.order.order_number}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertFalse(Payment.objects.exists())

    def test_history_is_scoped(self):
        Payment.objects.create(order=self.order, customer=self.user, amount=Decimal("1020.00"))
        other = factories.OrderFactory()
        Payment.objects.create(order=other, customer=other.customer, amount=Decimal("1020.00"))

        response = self.client.get(reverse("checkout-history"))
        self.assertEqual([p["order_number"] for p in response.data], [self.order.order_number])


class StripeWebhookTests(APITestCase):
    def setUp(self):
        self.item = factories.OrderItemFactory(order__payment_method=PaymentMethod.STRIPE)
        self.order = self.item.order
        Payment.objects.create(
            order=self.order, customer=self.order.customer, amount=self.order.final_amount, session_id="cs_1",
        )

    def post_event(self, event_type, obj):
        event = {"type": event_type, "data": {"object": obj}}
        with mock.patch("payments.views.construct_event", return_value=event):
            return self.client.post(
                reverse("stripe-webhook"), data=json.dumps(event), content_type="application/json",
                HTTP_STRIPE_SIGNATURE="t=1,v1=signature",
            )

    def session(self, **overrides):
        data = {
            "id": "cs_1",
            "payment_intent": "pi_1",
            "amount_total": 102000,
            "metadata": {"order_number": self.order.order_number},
        }
        data.update(overrides)
        return data

    def test_invalid_signature(self):
        with mock.patch("payments.views.construct_event", side_effect=ValueError("bad payload")):
            response = self.client.post(reverse("stripe-webhook"), data="{}", content_type="application/json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_checkout_completed_confirms_order(self):
        response = self.post_event("checkout.session.completed", self.session())

        self.assertEqual(response.data["status"], "payment_processed")
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(self.order.order_status, OrderStatus.CONFIRMED)
        self.assertEqual(self.order.payment_id, "pi_1")
        payment = Payment.objects.get()
        self.assertEqual((payment.status, payment.amount), (PaymentStatus.COMPLETED, Decimal("1020")))
        self.assertTrue(Notification.objects.filter(user=self.order.customer).exists())

    def test_duplicate_completion_is_ignored(self):
        self.post_event("checkout.session.completed", self.session())
        response = self.post_event("checkout.session.completed", self.session())
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "ignored")

    def test_unknown_order(self):
        response = self.post_event("checkout.session.completed", self.session(metadata={"order_number": "SP0"}))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_expired_session_cancels_and_restocks(self):
        response = self.post_event("checkout.session.expired", self.session())

        self.assertEqual(response.data["status"], "payment_cancelled")
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, OrderStatus.CANCELLED)
        self.assertEqual(self.order.payment_status, PaymentStatus.FAILED)
        self.item.variant.refresh_from_db()
        self.assertEqual(self.item.variant.stock, 22)
        self.assertEqual(Payment.objects.get().status, PaymentStatus.FAILED)

    def test_payment_failed(self):
        response = self.post_event("payment_intent.payment_failed", {
            "id": "pi_9", "metadata": {"order_number": self.order.order_number},
        })
        self.assertEqual(response.data["status"], "payment_failed")
        payment = Payment.objects.get()
        self.assertEqual((payment.status, payment.transaction_id), (PaymentStatus.FAILED, "pi_9"))
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, OrderStatus.PENDING)

    def test_unhandled_event(self):
        response = self.post_event("charge.refunded", {})
        self.assertEqual(response.data["status"], "event_not_handled")
