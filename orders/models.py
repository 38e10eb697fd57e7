from django.conf import settings
from django.db import models


class CartItem(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="cart_items")
    product = models.ForeignKey("catalog.Product", on_delete=models.CASCADE, related_name="+")
    quantity = models.PositiveIntegerField(default=1)
    phone_number = models.CharField(max_length=20, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "pk"]
        constraints = [
            models.UniqueConstraint(fields=["user", "product", "phone_number"], name="unique_cart_line"),
        ]

    def __str__(self):
        return f"{self.product_id} x{self.quantity} -> {self.phone_number or '-'}"


class Order(models.Model):
    STATUS_PENDING = "pending"
    STATUS_PROCESSING = "processing"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
    ]

    PAYMENT_PENDING = "pending"
    PAYMENT_SUCCESS = "success"
    PAYMENT_FAILED = "failed"
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_SUCCESS, "Success"),
        (PAYMENT_FAILED, "Failed"),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="orders")
    # Snapshots taken when the order is created; later product edits do not touch them.
    price = models.DecimalField(max_digits=10, decimal_places=2)
    data_amount = models.CharField(max_length=20)
    product_name = models.CharField(max_length=100, blank=True, default="")
    phone_number = models.CharField(max_length=20, blank=True, default="")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING)
    vendor_order_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-pk"]
        indexes = [
            models.Index(fields=["user", "status"], name="order_user_status_idx"),
        ]

    def __str__(self):
        return f"Order {self.pk} - {self.status}"


class ProcessingResult(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="processing_results")
    item_index = models.PositiveIntegerField(default=0)
    success = models.BooleanField(default=False)
    transaction_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    reference = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    message = models.CharField(max_length=255, blank=True, null=True)
    error = models.TextField(blank=True, null=True)
    status = models.CharField(max_length=20, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["item_index"]
        constraints = [
            models.UniqueConstraint(fields=["order", "item_index"], name="unique_processing_result"),
        ]

    def __str__(self):
        return f"{self.order_id}[{self.item_index}] {'ok' if self.success else 'failed'}"


class WebhookHistory(models.Model):
    """Append-only log of vendor status events applied to an order."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="webhook_history")
    event = models.CharField(max_length=50)
    vendor_order_id = models.CharField(max_length=100, blank=True, null=True)
    reference = models.CharField(max_length=100, blank=True, null=True)
    status = models.CharField(max_length=20)
    recipient = models.CharField(max_length=30, blank=True, null=True)
    volume = models.FloatField(blank=True, null=True)
    timestamp = models.DateTimeField()
    received_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["received_at", "pk"]
        verbose_name_plural = "webhook history"

    def __str__(self):
        return f"{self.order_id} {self.event} {self.status}"
