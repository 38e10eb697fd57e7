import uuid

from django.conf import settings
from django.db import models


class PaymentTransaction(models.Model):
    STATUS_CHOICES = [
        ("PENDING", "Pending"),
        ("SUCCESS", "Success"),
        ("FAILED", "Failed"),
    ]
    PURPOSE_CHOICES = [
        ("order", "Order"),
        ("wallet", "Wallet funding"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,  # Keep transaction record if user is deleted
        null=True,
        blank=True,
    )
    reference = models.CharField(max_length=100, unique=True)  # Sent to and echoed back by Paystack
    amount = models.DecimalField(max_digits=12, decimal_places=2)  # GHS, not pesewas
    email = models.CharField(max_length=254, blank=True, default="")
    purpose = models.CharField(max_length=20, choices=PURPOSE_CHOICES, default="order")
    metadata = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.reference} - {self.status}"

    @staticmethod
    def new_reference():
        return uuid.uuid4().hex
