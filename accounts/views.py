from decimal import Decimal

from django.apps import apps
from django.db.models import Sum
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from utils.exceptions import FulfilmentError

from .models import Account
from .permissions import IsAdminRole
from .serializers import AccountSerializer


class AccountDetailView(APIView):
    """Role, wallet balance and purchase counters of the current user."""

    def get(self, request):
        return Response(AccountSerializer(request.user.account).data, status=status.HTTP_200_OK)


class WalletLoadView(APIView):
    """Admin top-up of an agent's wallet. Amounts are GHS, not pesewas."""

    permission_classes = [IsAdminRole]

    def post(self, request, account_id):
        amount = request.data.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, (int, float, str)) or not amount:
            return Response({"error": "Invalid amount"}, status=status.HTTP_400_BAD_REQUEST)

        ledger = apps.get_app_config("orders").checkout.ledger
        try:
            balance = ledger.credit(account_id, amount)
        except FulfilmentError as e:
            return Response({"error": str(e)}, status=e.status_code)

        return Response({"id": account_id, "balance": balance}, status=status.HTTP_200_OK)


class AgentVerifyView(APIView):
    permission_classes = [IsAdminRole]

    def patch(self, request, account_id):
        try:
            account = Account.objects.get(pk=account_id)
        except Account.DoesNotExist:
            return Response({"error": "User not found"}, status=status.HTTP_404_NOT_FOUND)

        account.is_verified = True
        account.save(update_fields=["is_verified", "updated_at"])
        return Response(AccountSerializer(account).data, status=status.HTTP_200_OK)


class AgentListView(APIView):
    """All agents, or only those awaiting verification with ``?unverified=1``."""

    permission_classes = [IsAdminRole]
    unverified_only = False

    def get(self, request):
        agents = Account.objects.filter(role=Account.ROLE_AGENT).select_related("user").order_by("created_at")
        if self.unverified_only:
            agents = agents.filter(is_verified=False)
        return Response(AccountSerializer(agents, many=True).data, status=status.HTTP_200_OK)


class AdminTotalsView(APIView):
    """Daily and lifetime purchase counters summed over every account."""

    permission_classes = [IsAdminRole]

    def get(self, request):
        totals = Account.objects.aggregate(
            total_orders_today=Sum("total_orders_today"),
            total_gb_sent_today=Sum("total_gb_sent_today"),
            total_spent_today=Sum("total_spent_today"),
            total_gb_purchased=Sum("total_gb_purchased"),
        )
        response_data = {
            "total_orders_today": totals["total_orders_today"] or 0,
            "total_gb_sent_today": totals["total_gb_sent_today"] or 0,
            "total_spent_today": totals["total_spent_today"] or Decimal("0.00"),
            "total_gb_purchased": totals["total_gb_purchased"] or 0,
        }
        return Response(response_data, status=status.HTTP_200_OK)
