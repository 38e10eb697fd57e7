from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "role",
                    models.CharField(
                        choices=[("admin", "Admin"), ("agent", "Agent"), ("user", "User")],
                        default="user",
                        max_length=10,
                    ),
                ),
                ("is_verified", models.BooleanField(default=False)),
                ("phone_number", models.CharField(blank=True, max_length=20, null=True)),
                ("balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total_orders_today", models.PositiveIntegerField(default=0)),
                ("total_gb_sent_today", models.FloatField(default=0)),
                ("total_spent_today", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total_gb_purchased", models.FloatField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="account",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
        ),
    ]
