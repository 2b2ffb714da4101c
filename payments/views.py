import logging
from decimal import Decimal

import stripe
from django.conf import settings
from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import viewsets, permissions, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_yasg.utils import swagger_auto_schema

from orders.models import Order
from orders.enums import OrderStatus, PaymentStatus, PaymentMethod
from orders import utils as order_utils
from orders.utils import OrderError
from payments.models import Payment
from payments.serializers import PaymentSerializer, CheckoutSerializer
from payments.stripe_utils import create_checkout_session, construct_event
from notification.utils import notify_order_payment_completed, notify_order_payment_failed
from users.permissions import is_admin_user

logger = logging.getLogger(__name__)


# ------------------------
# CHECKOUT SESSION
# ------------------------
class CheckoutViewSet(viewsets.ViewSet):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(request_body=CheckoutSerializer)
    @action(detail=False, methods=['post'], url_path='checkout')
    def checkout(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = get_object_or_404(
            Order, order_number=serializer.validated_data["order_number"], customer=request.user
        )

        if order.payment_status == PaymentStatus.COMPLETED:
            return Response({"error": "Order is already paid"}, status=status.HTTP_400_BAD_REQUEST)
        if order.order_status == OrderStatus.CANCELLED:
            return Response({"error": "Order is cancelled"}, status=status.HTTP_400_BAD_REQUEST)

        success_base = getattr(settings, "FRONTEND_PAYMENT_SUCCESS_URL", "http://localhost:5173/payments/success/")
        cancel_url = getattr(settings, "FRONTEND_PAYMENT_CANCEL_URL", "http://localhost:5173/payments/cancel/")

        try:
            session = create_checkout_session(
                order,
                success_url=f"{success_base}?order_number={order.order_number}",
                cancel_url=cancel_url,
            )
        except stripe.error.StripeError as e:
            logger.error("Stripe session creation failed for %s: %s", order.order_number, e, exc_info=True)
            return Response({"error": "Failed to create checkout session"}, status=status.HTTP_502_BAD_GATEWAY)

        Payment.objects.create(
            order=order,
            customer=request.user,
            amount=order.final_amount,
            currency=getattr(settings, "STRIPE_CURRENCY", "inr"),
            payment_method=PaymentMethod.STRIPE,
            session_id=session.id,
        )
        if order.payment_method != PaymentMethod.STRIPE:
            order.payment_method = PaymentMethod.STRIPE
            order.save(update_fields=["payment_method", "updated_at"])

        return Response({
            "checkout_url": session.url,
            "session_id": session.id,
            "order_number": order.order_number,
            "final_amount": str(order.final_amount),
        })

    @action(detail=False, methods=['get'])
    def history(self, request):
        payments = Payment.objects.select_related("order", "customer")
        if not is_admin_user(request.user):
            payments = payments.filter(customer=request.user)
        return Response(PaymentSerializer(payments, many=True).data)


# ------------------------
# STRIPE WEBHOOK
# ------------------------
class StripeWebhookView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request, *args, **kwargs):
        sig_header = request.META.get("HTTP_STRIPE_SIGNATURE")
        try:
            event = construct_event(request.body, sig_header)
        except (ValueError, stripe.error.SignatureVerificationError):
            logger.error("Invalid Stripe webhook payload or signature")
            return Response({"error": "Invalid signature"}, status=400)

        event_type = event["type"]
        logger.info("Stripe event received: %s", event_type)

        handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "checkout.session.expired": self.handle_checkout_expired,
            "payment_intent.payment_failed": self.handle_payment_failed,
        }
        handler = handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled Stripe event: %s", event_type)
            return Response({"status": "event_not_handled"}, status=200)
        return handler(event["data"]["object"])

    # ------------------------
    # HANDLERS
    # ------------------------
    def _order_for(self, obj):
        order_number = (obj.get("metadata") or {}).get("order_number")
        if not order_number:
            return None
        return Order.objects.filter(order_number=order_number).first()

    def handle_checkout_completed(self, session):
        order = self._order_for(session)
        if order is None:
            logger.error("Checkout completed for unknown order: %s", session.get("metadata"))
            return Response({"error": "Order not found"}, status=404)

        transaction_id = session.get("payment_intent") or session.get("id")
        with transaction.atomic():
            Payment.objects.update_or_create(
                order=order,
                session_id=session.get("id", ""),
                defaults={
                    "customer": order.customer,
                    "amount": Decimal(session.get("amount_total") or 0) / 100,
                    "transaction_id": transaction_id,
                    "status": PaymentStatus.COMPLETED,
                },
            )
            try:
                order_utils.process_payment(order, transaction_id)
            except OrderError as e:
                logger.warning("Payment for %s not applied: %s", order.order_number, e)
                return Response({"status": "ignored", "reason": str(e)}, status=200)

        notify_order_payment_completed(order)
        logger.info("Stripe payment completed for order %s", order.order_number)
        return Response({"status": "payment_processed"}, status=200)

    def handle_checkout_expired(self, session):
        order = self._order_for(session)
        if order is None:
            return Response({"error": "Order not found"}, status=404)

        Payment.objects.filter(order=order, session_id=session.get("id", "")).update(status=PaymentStatus.FAILED)
        order_utils.mark_payment_failed(order)
        if order.payment_status != PaymentStatus.COMPLETED and order.can_be_cancelled():
            order_utils.cancel_order(order, reason="Payment session expired")

        notify_order_payment_failed(order)
        logger.info("Stripe checkout expired for order %s", order.order_number)
        return Response({"status": "payment_cancelled"}, status=200)

    def handle_payment_failed(self, intent):
        order = self._order_for(intent)
        if order is None:
            return Response({"error": "Order not found"}, status=404)

        Payment.objects.filter(order=order, status=PaymentStatus.PENDING).update(
            status=PaymentStatus.FAILED, transaction_id=intent.get("id", ""),
        )
        order_utils.mark_payment_failed(order)
        notify_order_payment_failed(order)
        logger.info("Stripe payment failed for order %s", order.order_number)
        return Response({"status": "payment_failed"}, status=200)
