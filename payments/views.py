import logging

from django.apps import apps
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from utils.exceptions import ConfigurationError, FulfilmentError, SignatureMismatch

from .models import PaymentTransaction

logger = logging.getLogger(__name__)


class PaystackInitializeView(APIView):
    """
    Start a Paystack payment that funds the agent's wallet.
    Paystack's response is returned unchanged so the frontend can redirect.
    """

    def post(self, request):
        amount = request.data.get("amount")
        if amount is None:
            return Response({"error": "Amount is required"}, status=status.HTTP_400_BAD_REQUEST)

        checkout = apps.get_app_config("orders").checkout
        try:
            session = checkout.fund_wallet(request.user, amount)
        except FulfilmentError as e:
            return Response({"error": str(e)}, status=e.status_code)

        return Response(session.data, status=status.HTTP_200_OK)


class PaystackWebhookView(APIView):
    """
    Handle charge notifications from Paystack.
    The raw body is HMAC-SHA512 signed with our secret key; anything that
    fails the check is rejected before any processing.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        handler = apps.get_app_config("payments").webhooks
        try:
            handler.handle(request.body, request.headers.get("X-Paystack-Signature"))
        except SignatureMismatch:
            logger.warning("Invalid Paystack webhook signature")
            return Response({"error": "Invalid signature"}, status=status.HTTP_400_BAD_REQUEST)
        except ConfigurationError as e:
            return Response({"error": str(e)}, status=e.status_code)
        except Exception:
            # Paystack retries non-2xx responses; the failure is ours to investigate.
            logger.exception("Paystack webhook processing error")

        return Response({"status": True}, status=status.HTTP_200_OK)


class PaymentStatusView(APIView):
    """
    Allows the frontend to check a payment's status from our system.
    """

    def get(self, request, reference):
        try:
            transaction = PaymentTransaction.objects.get(reference=reference, user=request.user)
        except PaymentTransaction.DoesNotExist:
            return Response({"error": "Transaction not found"}, status=status.HTTP_404_NOT_FOUND)

        # If status is still pending, re-check with Paystack to get the latest update
        if transaction.status == "PENDING":
            try:
                transaction = apps.get_app_config("payments").webhooks.refresh(transaction)
            except Exception as e:
                logger.error(f"Error re-checking Paystack transaction {reference}: {e}")

        response_data = {
            "reference": transaction.reference,
            "purpose": transaction.purpose,
            "amount": transaction.amount,
            "status": transaction.status,
            "updated_at": transaction.updated_at.isoformat(),
        }
        return Response(response_data, status=status.HTTP_200_OK)
