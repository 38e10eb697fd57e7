from rest_framework import serializers

from catalog.serializers import ProductSerializer

from .models import CartItem, Order, ProcessingResult, WebhookHistory


class ProcessingResultSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProcessingResult
        fields = ["item_index", "success", "transaction_id", "reference", "message", "error", "status"]


class WebhookHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = WebhookHistory
        fields = ["event", "vendor_order_id", "reference", "status", "recipient", "volume", "timestamp"]


class OrderSerializer(serializers.ModelSerializer):
    product_network = serializers.CharField(source="product.network", read_only=True)
    processing_results = ProcessingResultSerializer(many=True, read_only=True)
    webhook_history = WebhookHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "user",
            "product",
            "product_name",
            "product_network",
            "price",
            "data_amount",
            "phone_number",
            "status",
            "payment_status",
            "vendor_order_id",
            "processing_results",
            "webhook_history",
            "created_at",
            "updated_at",
        ]


class AdminOrderSerializer(OrderSerializer):
    buyer_username = serializers.CharField(source="user.username", read_only=True)
    buyer_role = serializers.CharField(source="user.account.role", read_only=True, default=None)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["buyer_username", "buyer_role"]


class CartItemSerializer(serializers.ModelSerializer):
    product = ProductSerializer(read_only=True)

    class Meta:
        model = CartItem
        fields = ["product", "quantity", "phone_number"]
