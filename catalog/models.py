from django.core.exceptions import ValidationError
from django.db import models


class Product(models.Model):
    NETWORK_CHOICES = [
        ("MTN", "MTN"),
        ("Telecel", "Telecel"),
        ("AirtelTigo", "AirtelTigo"),
    ]

    name = models.CharField(max_length=100)
    network = models.CharField(max_length=20, choices=NETWORK_CHOICES)
    data_amount = models.CharField(max_length=20)  # e.g. "5GB" or "512MB"
    user_price = models.DecimalField(max_digits=10, decimal_places=2)
    agent_price = models.DecimalField(max_digits=10, decimal_places=2)
    description = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["network", "name"]

    def __str__(self):
        return f"{self.name} ({self.network} {self.data_amount})"

    def clean(self):
        if self.user_price is not None and self.user_price == self.agent_price:
            raise ValidationError("User price and Agent price must be different")

    def price_for_role(self, role):
        return self.agent_price if role == "agent" else self.user_price
