from rest_framework import serializers

from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "network",
            "data_amount",
            "user_price",
            "agent_price",
            "description",
            "created_at",
        ]
        read_only_fields = ["id", "created_at"]
