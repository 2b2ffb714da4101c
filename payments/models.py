from django.db import models
from django.conf import settings
from django.db.models import Sum

from users.models import BaseModel
from orders.enums import PaymentStatus, PaymentMethod


class Payment(BaseModel):
    order = models.ForeignKey('orders.Order', on_delete=models.CASCADE, related_name='payments')
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payments",
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10, default="inr")
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.STRIPE)
    session_id = models.CharField(max_length=255, blank=True)
    transaction_id = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)

    note = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["session_id"]), models.Index(fields=["status"])]

    def __str__(self):
        return f"Payment #{self.id} - {self.order.order_number} - {self.status}"

    @classmethod
    def get_total_payments(cls, user=None):
        """Sum of completed payments, optionally for one customer."""
        qs = cls.objects.filter(status=PaymentStatus.COMPLETED)
        if user:
            qs = qs.filter(customer=user)
        return qs.aggregate(total=Sum('amount'))['total'] or 0
