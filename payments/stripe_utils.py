from decimal import Decimal

import stripe
from django.conf import settings


def _to_minor_units(amount):
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


def create_checkout_session(order, success_url, cancel_url):
    """Stripe Checkout session charging the order's final amount as one line."""
    stripe.api_key = settings.STRIPE_SECRET_KEY
    currency = getattr(settings, "STRIPE_CURRENCY", "inr")
    metadata = {"order_number": order.order_number, "customer_id": str(order.customer_id)}

    session = stripe.checkout.Session.create(
        payment_method_types=["card"],
        line_items=[{
            "price_data": {
                "currency": currency,
                "product_data": {"name": f"Order {order.order_number}"},
                "unit_amount": _to_minor_units(order.final_amount),
            },
            "quantity": 1,
        }],
        mode="payment",
        customer_email=order.customer.email,
        success_url=success_url,
        cancel_url=cancel_url,
        metadata=metadata,
        payment_intent_data={"metadata": metadata},
    )
    return session


def construct_event(payload, sig_header):
    return stripe.Webhook.construct_event(payload, sig_header, getattr(settings, "STRIPE_WEBHOOK_SECRET", ""))
