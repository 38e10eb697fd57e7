from rest_framework import serializers

from .models import Account


class AccountSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.username", read_only=True)
    email = serializers.CharField(source="user.email", read_only=True)

    class Meta:
        model = Account
        fields = [
            "id",
            "username",
            "email",
            "role",
            "is_verified",
            "phone_number",
            "balance",
            "total_orders_today",
            "total_gb_sent_today",
            "total_spent_today",
            "total_gb_purchased",
        ]
