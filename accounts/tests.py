from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from orders.tasks import reset_daily_totals
from utils.exceptions import InsufficientFunds, NotFound, ValidationError

from .ledger import WalletLedger
from .models import Account

User = get_user_model()


def make_account(username, role="agent", balance="0.00", is_verified=True):
    user = User.objects.create_user(username=username, email=f"{username}@example.com", password="testpassword123")
    account = user.account
    account.role = role
    account.is_verified = is_verified
    account.balance = Decimal(balance)
    account.save()
    return account


class AccountSignalTests(TestCase):
    def test_new_users_get_a_plain_user_account(self):
        user = User.objects.create_user(username="fresh", password="testpassword123")

        account = Account.objects.get(user=user)
        self.assertEqual(account.role, "user")
        self.assertEqual(account.balance, Decimal("0.00"))
        self.assertFalse(account.is_verified)


class WalletLedgerTests(TestCase):
    def setUp(self):
        self.ledger = WalletLedger()
        self.account = make_account("agent", balance="50.00")

    def test_credit_returns_new_balance(self):
        self.assertEqual(self.ledger.credit(self.account.pk, "12.50"), Decimal("62.50"))

    def test_debit_to_exactly_zero(self):
        self.assertEqual(self.ledger.debit(self.account.pk, Decimal("50.00")), Decimal("0.00"))

    def test_debit_more_than_balance_fails_and_keeps_balance(self):
        with self.assertRaises(InsufficientFunds) as ctx:
            self.ledger.debit(self.account.pk, Decimal("50.01"))

        self.assertIn("You need GHS 50.01, but have GHS 50.00", str(ctx.exception))
        self.assertEqual(self.ledger.balance(self.account.pk), Decimal("50.00"))

    def test_debit_sequence_never_goes_negative(self):
        succeeded = 0
        for _ in range(4):
            try:
                self.ledger.debit(self.account.pk, Decimal("20.00"))
                succeeded += 1
            except InsufficientFunds:
                pass

        self.assertEqual(succeeded, 2)
        self.assertEqual(self.ledger.balance(self.account.pk), Decimal("10.00"))

    def test_debit_checks_stored_balance_not_loaded_instance(self):
        stale = Account.objects.get(pk=self.account.pk)
        Account.objects.filter(pk=self.account.pk).update(balance=Decimal("5.00"))

        self.assertEqual(stale.balance, Decimal("50.00"))
        with self.assertRaises(InsufficientFunds):
            self.ledger.debit(stale.pk, Decimal("20.00"))

    def test_non_positive_amounts_are_rejected(self):
        for amount in (0, -5, "abc", None):
            with self.assertRaises(ValidationError):
                self.ledger.debit(self.account.pk, amount)
            with self.assertRaises(ValidationError):
                self.ledger.credit(self.account.pk, amount)

    def test_unknown_account(self):
        with self.assertRaises(NotFound):
            self.ledger.credit(999999, 10)
        with self.assertRaises(NotFound):
            self.ledger.debit(999999, 10)


class DailyTotalsTests(TestCase):
    def test_reset_daily_totals_keeps_lifetime_counter(self):
        account = make_account("agent")
        Account.objects.filter(pk=account.pk).update(
            total_orders_today=3,
            total_gb_sent_today=7.5,
            total_spent_today=Decimal("60.00"),
            total_gb_purchased=40,
        )

        reset_daily_totals()

        account.refresh_from_db()
        self.assertEqual(account.total_orders_today, 0)
        self.assertEqual(account.total_gb_sent_today, 0)
        self.assertEqual(account.total_spent_today, Decimal("0.00"))
        self.assertEqual(account.total_gb_purchased, 40)


class AdminAccountViewTests(APITestCase):
    def setUp(self):
        self.admin = make_account("admin", role="admin")
        self.agent = make_account("agent", balance="5.00", is_verified=False)
        self.load_url = reverse("wallet-load", args=[self.agent.pk])

    def test_admin_can_load_wallet(self):
        self.client.force_authenticate(user=self.admin.user)

        response = self.client.post(self.load_url, {"amount": 20}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.agent.refresh_from_db()
        self.assertEqual(self.agent.balance, Decimal("25.00"))

    def test_wallet_load_rejects_invalid_amount(self):
        self.client.force_authenticate(user=self.admin.user)

        response = self.client.post(self.load_url, {"amount": -3}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.agent.refresh_from_db()
        self.assertEqual(self.agent.balance, Decimal("5.00"))

    def test_agent_cannot_load_wallet(self):
        self.client.force_authenticate(user=self.agent.user)

        response = self.client.post(self.load_url, {"amount": 20}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_verifies_agent(self):
        self.client.force_authenticate(user=self.admin.user)

        response = self.client.patch(reverse("agent-verify", args=[self.agent.pk]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.agent.refresh_from_db()
        self.assertTrue(self.agent.is_verified)

    def test_me_shows_balance(self):
        self.client.force_authenticate(user=self.agent.user)

        response = self.client.get(reverse("account-detail"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["balance"], "5.00")
        self.assertEqual(response.data["role"], "agent")


class AdminReportingViewTests(APITestCase):
    def setUp(self):
        self.admin = make_account("admin", role="admin")
        self.verified = make_account("verified-agent", role="agent")
        self.pending = make_account("pending-agent", role="agent", is_verified=False)
        self.buyer = make_account("buyer", role="user")

    def test_agent_lists(self):
        self.client.force_authenticate(user=self.admin.user)

        agents = self.client.get(reverse("agent-list"))
        unverified = self.client.get(reverse("unverified-agent-list"))

        self.assertEqual(agents.status_code, status.HTTP_200_OK)
        self.assertEqual({a["id"] for a in agents.data}, {self.verified.pk, self.pending.pk})
        self.assertEqual(unverified.status_code, status.HTTP_200_OK)
        self.assertEqual([a["username"] for a in unverified.data], ["pending-agent"])

    def test_totals_sum_every_account(self):
        Account.objects.filter(pk=self.verified.pk).update(
            total_orders_today=2, total_gb_sent_today=3.5, total_spent_today=Decimal("30.00"), total_gb_purchased=10
        )
        Account.objects.filter(pk=self.buyer.pk).update(
            total_orders_today=1, total_gb_sent_today=1, total_spent_today=Decimal("12.50"), total_gb_purchased=4
        )
        self.client.force_authenticate(user=self.admin.user)

        response = self.client.get(reverse("admin-totals"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total_orders_today"], 3)
        self.assertEqual(response.data["total_gb_sent_today"], 4.5)
        self.assertEqual(response.data["total_spent_today"], Decimal("42.50"))
        self.assertEqual(response.data["total_gb_purchased"], 14)

    def test_reporting_is_admin_only(self):
        self.client.force_authenticate(user=self.verified.user)

        for name in ("agent-list", "unverified-agent-list", "admin-totals"):
            response = self.client.get(reverse(name))
            self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
