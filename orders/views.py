import logging

from django.apps import apps
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsAdminRole, role_of
from utils.exceptions import FulfilmentError
from utils.paystack import PaymentSession

from .models import Order
from .serializers import AdminOrderSerializer, CartItemSerializer, OrderSerializer

logger = logging.getLogger(__name__)


def checkout_service():
    return apps.get_app_config("orders").checkout


def page_params(request, default_limit, max_limit):
    try:
        page = max(1, int(request.query_params.get("page", 1)))
    except ValueError:
        page = 1
    try:
        limit = min(max_limit, max(1, int(request.query_params.get("limit", default_limit))))
    except ValueError:
        limit = default_limit
    return page, limit


def payment_response(result):
    # A Paystack session is handed back untouched; wallet payments list the new orders.
    if isinstance(result, PaymentSession):
        return Response(result.data, status=status.HTTP_200_OK)
    return Response(
        {
            "status": "ok",
            "message": "Payment successful",
            "balance": result.balance,
            "orders": OrderSerializer(result.orders, many=True).data,
        },
        status=status.HTTP_200_OK,
    )


class CartView(APIView):
    def get(self, request):
        cart = checkout_service().get_cart(request.user)
        return Response(CartItemSerializer(cart, many=True).data, status=status.HTTP_200_OK)


class CartAddView(APIView):
    def post(self, request):
        product_id = request.data.get("product_id")
        if not product_id:
            return Response({"error": "product_id required"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            cart = checkout_service().add_to_cart(
                request.user,
                product_id,
                quantity=request.data.get("quantity") or 1,
                phone_number=request.data.get("phone_number") or "",
            )
        except FulfilmentError as e:
            return Response({"error": str(e)}, status=e.status_code)
        return Response(CartItemSerializer(cart, many=True).data, status=status.HTTP_200_OK)


class CartRemoveView(APIView):
    def post(self, request):
        product_id = request.data.get("product_id")
        if not product_id:
            return Response({"error": "product_id required"}, status=status.HTTP_400_BAD_REQUEST)
        cart = checkout_service().remove_from_cart(request.user, product_id)
        return Response(CartItemSerializer(cart, many=True).data, status=status.HTTP_200_OK)


class CartClearView(APIView):
    def post(self, request):
        checkout_service().clear_cart(request.user)
        return Response({"status": "ok", "message": "Cart cleared"}, status=status.HTTP_200_OK)


class CheckoutView(APIView):
    """
    Pay for the whole cart, from the agent wallet or through Paystack.
    """

    def post(self, request):
        payment_method = request.data.get("payment_method") or "paystack"
        try:
            result = checkout_service().checkout(request.user, payment_method)
        except FulfilmentError as e:
            return Response({"error": str(e)}, status=e.status_code)
        return payment_response(result)


class OrderPayView(APIView):
    """
    Pay for a single product without going through the cart.
    """

    def post(self, request):
        product_id = request.data.get("product_id")
        if not product_id:
            return Response({"error": "product_id required"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            result = checkout_service().pay_for_product(
                request.user,
                product_id,
                use_wallet=bool(request.data.get("use_wallet")),
                phone_number=request.data.get("phone_number") or "",
            )
        except FulfilmentError as e:
            return Response({"error": str(e)}, status=e.status_code)
        return payment_response(result)


class OrderListView(APIView):
    def get(self, request):
        page, limit = page_params(request, default_limit=10, max_limit=50)
        data = checkout_service().lifecycle.orders_for_user(request.user, page, limit)
        data["orders"] = OrderSerializer(data["orders"], many=True).data
        return Response(data, status=status.HTTP_200_OK)


class OrderDetailView(APIView):
    """Single order, for polling its status."""

    def get(self, request, pk):
        try:
            order = Order.objects.prefetch_related("processing_results", "webhook_history").get(pk=pk)
        except Order.DoesNotExist:
            return Response({"error": "Order not found"}, status=status.HTTP_404_NOT_FOUND)

        if order.user_id != request.user.pk and role_of(request.user) != "admin":
            return Response({"error": "Forbidden"}, status=status.HTTP_403_FORBIDDEN)
        return Response(OrderSerializer(order).data, status=status.HTTP_200_OK)


class AdminOrderListView(APIView):
    permission_classes = [IsAdminRole]

    def get(self, request):
        page, limit = page_params(request, default_limit=50, max_limit=100)
        data = checkout_service().lifecycle.all_orders(page, limit)
        orders = data["orders"]
        data["total_spent"] = sum(order.price for order in orders)
        data["orders"] = AdminOrderSerializer(orders, many=True).data
        return Response(data, status=status.HTTP_200_OK)


class Portal02WebhookView(APIView):
    """
    Status updates from Portal-02. Always answered with 200 so the vendor
    does not keep retrying; events that cannot be applied are logged.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        try:
            checkout_service().lifecycle.apply_vendor_webhook(request.data)
        except Exception:
            logger.exception("Portal-02 webhook error")
        return Response("OK", status=status.HTTP_200_OK)
