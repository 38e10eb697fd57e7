from django.urls import path

from .views import AccountDetailView, AdminTotalsView, AgentListView, AgentVerifyView, WalletLoadView

urlpatterns = [
    path("accounts/me/", AccountDetailView.as_view(), name="account-detail"),
    path("users/agents/", AgentListView.as_view(), name="agent-list"),
    path("users/unverified/", AgentListView.as_view(unverified_only=True), name="unverified-agent-list"),
    path("admin/totals/", AdminTotalsView.as_view(), name="admin-totals"),
    path("admin/wallet/<int:account_id>/load/", WalletLoadView.as_view(), name="wallet-load"),
    path("admin/agents/<int:account_id>/verify/", AgentVerifyView.as_view(), name="agent-verify"),
]
