from django.urls import path

from .views import (
    AdminOrderListView,
    CartAddView,
    CartClearView,
    CartRemoveView,
    CartView,
    CheckoutView,
    OrderDetailView,
    OrderListView,
    OrderPayView,
    Portal02WebhookView,
)

urlpatterns = [
    path("cart/", CartView.as_view(), name="cart"),
    path("cart/add/", CartAddView.as_view(), name="cart-add"),
    path("cart/remove/", CartRemoveView.as_view(), name="cart-remove"),
    path("cart/clear/", CartClearView.as_view(), name="cart-clear"),
    path("cart/checkout/", CheckoutView.as_view(), name="cart-checkout"),
    path("orders/", OrderListView.as_view(), name="order-list"),
    path("orders/pay/", OrderPayView.as_view(), name="order-pay"),
    path("orders/<int:pk>/", OrderDetailView.as_view(), name="order-detail"),
    path("admin/orders/", AdminOrderListView.as_view(), name="admin-order-list"),
    path("webhooks/portal02/", Portal02WebhookView.as_view(), name="portal02-webhook"),
]
