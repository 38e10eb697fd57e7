from decimal import Decimal

from django.conf import settings
from django.db import models


class Account(models.Model):
    ROLE_ADMIN = "admin"
    ROLE_AGENT = "agent"
    ROLE_USER = "user"
    ROLE_CHOICES = [
        (ROLE_ADMIN, "Admin"),
        (ROLE_AGENT, "Agent"),
        (ROLE_USER, "User"),
    ]

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="account")
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_USER)
    is_verified = models.BooleanField(default=False)
    phone_number = models.CharField(max_length=20, blank=True, null=True)
    # GHS. Only ever changed through accounts.ledger.WalletLedger.
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    total_orders_today = models.PositiveIntegerField(default=0)
    total_gb_sent_today = models.FloatField(default=0)
    total_spent_today = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_gb_purchased = models.FloatField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user} ({self.role})"

    @property
    def is_agent(self):
        return self.role == self.ROLE_AGENT
