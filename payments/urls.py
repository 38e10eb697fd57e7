from django.urls import path

from .views import PaymentStatusView, PaystackInitializeView, PaystackWebhookView

urlpatterns = [
    path("paystack/initialize/", PaystackInitializeView.as_view(), name="paystack-initialize"),
    path("paystack/webhook/", PaystackWebhookView.as_view(), name="paystack-webhook"),
    path("payments/<str:reference>/", PaymentStatusView.as_view(), name="payment-status"),
]
