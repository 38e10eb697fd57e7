import hashlib
import hmac
import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.apps import apps
from django.contrib.auth import get_user_model
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import Account
from catalog.models import Product
from orders.models import CartItem, Order
from utils.paystack import GatewayEvent, PaymentSession
from utils.portal02 import PurchaseResult

from .models import PaymentTransaction
from .tasks import verify_pending_payments

User = get_user_model()

SECRET = "sk_test_secret"


def make_user(username, role="user", balance="0.00"):
    user = User.objects.create_user(username=username, email=f"{username}@example.com", password="testpassword123")
    user.account.role = role
    user.account.is_verified = True
    user.account.balance = Decimal(balance)
    user.account.save()
    return user


class PaystackTestCase(APITestCase):
    def setUp(self):
        gateway = apps.get_app_config("orders").checkout.gateway
        patcher = patch.object(gateway, "secret_key", SECRET)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.agent = make_user("agent", role="agent", balance="10.00")
        self.buyer = make_user("buyer")
        self.product = Product.objects.create(
            name="MTN 2GB",
            network="MTN",
            data_amount="2GB",
            user_price=Decimal("12.00"),
            agent_price=Decimal("10.00"),
        )


class PaystackWebhookViewTests(PaystackTestCase):
    def setUp(self):
        super().setUp()
        self.url = reverse("paystack-webhook")

    def post_event(self, payload, signature=None):
        body = json.dumps(payload).encode()
        if signature is None:
            signature = hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()
        return self.client.generic(
            "POST", self.url, body, content_type="application/json", HTTP_X_PAYSTACK_SIGNATURE=signature
        )

    def charge(self, reference, amount_minor, metadata):
        return {
            "event": "charge.success",
            "data": {"reference": reference, "amount": amount_minor, "metadata": metadata},
        }

    def test_invalid_signature_is_rejected_before_processing(self):
        payload = self.charge("ref-1", 5000, {"type": "wallet", "agentId": self.agent.account.pk})

        response = self.post_event(payload, signature="not-the-signature")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "Invalid signature")
        self.assertEqual(Account.objects.get(pk=self.agent.account.pk).balance, Decimal("10.00"))
        self.assertFalse(PaymentTransaction.objects.exists())

    def test_missing_secret_key_is_a_server_error(self):
        gateway = apps.get_app_config("orders").checkout.gateway
        with patch.object(gateway, "secret_key", None):
            response = self.post_event({"event": "charge.success"}, signature="anything")

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    def test_wallet_charge_credits_amount_in_ghs(self):
        payload = self.charge("ref-wallet", 5000, {"type": "wallet", "agentId": self.agent.account.pk})

        response = self.post_event(payload)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {"status": True})
        self.assertEqual(Account.objects.get(pk=self.agent.account.pk).balance, Decimal("60.00"))
        self.assertEqual(PaymentTransaction.objects.get(reference="ref-wallet").status, "SUCCESS")

    def test_replayed_charge_is_applied_once(self):
        payload = self.charge("ref-wallet", 5000, {"type": "wallet", "agentId": self.agent.account.pk})

        self.post_event(payload)
        response = self.post_event(payload)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Account.objects.get(pk=self.agent.account.pk).balance, Decimal("60.00"))

    @patch("utils.portal02.Portal02Client.purchase_with_retry")
    def test_order_charge_creates_orders_and_clears_cart(self, mock_purchase):
        mock_purchase.return_value = PurchaseResult(success=True, transaction_id="P02-5", status="processing")
        CartItem.objects.create(user=self.buyer, product=self.product, quantity=2, phone_number="0241234567")
        metadata = {
            "type": "order",
            "userId": self.buyer.pk,
            "cart": [{"productId": self.product.pk, "quantity": 2, "phoneNumber": "0241234567"}],
        }
        payload = self.charge("ref-order", 2400, json.dumps(metadata))

        self.post_event(payload)
        self.post_event(payload)

        orders = Order.objects.filter(user=self.buyer)
        self.assertEqual(orders.count(), 2)
        self.assertTrue(all(order.payment_status == Order.PAYMENT_SUCCESS for order in orders))
        self.assertTrue(all(order.price == Decimal("12.00") for order in orders))
        self.assertFalse(CartItem.objects.filter(user=self.buyer).exists())
        self.assertEqual(mock_purchase.call_count, 2)

    @patch("orders.checkout.CheckoutService.clear_cart", side_effect=RuntimeError("cart store down"))
    @patch("utils.portal02.Portal02Client.purchase_with_retry")
    def test_interrupted_order_charge_is_not_dispatched_again(self, mock_purchase, _):
        mock_purchase.return_value = PurchaseResult(success=True, transaction_id="P02-8", status="processing")
        handler = apps.get_app_config("payments").webhooks
        metadata = {
            "type": "order",
            "userId": self.buyer.pk,
            "cart": [{"productId": self.product.pk, "quantity": 1, "phoneNumber": "0241234567"}],
        }
        event = GatewayEvent(event="charge.success", reference="ref-interrupted", amount_minor=1200, metadata=metadata)

        with self.assertRaises(RuntimeError):
            handler.reconcile(event)
        self.assertIsNone(handler.reconcile(event))

        self.assertEqual(mock_purchase.call_count, 1)
        order = Order.objects.get(user=self.buyer)
        self.assertEqual(order.vendor_order_id, "P02-8")
        self.assertEqual(order.status, Order.STATUS_PROCESSING)
        self.assertEqual(PaymentTransaction.objects.get(reference="ref-interrupted").status, "SUCCESS")

    def test_non_success_events_are_acknowledged_and_ignored(self):
        payload = {"event": "charge.failed", "data": {"reference": "ref-x", "amount": 100, "metadata": {}}}

        response = self.post_event(payload)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(PaymentTransaction.objects.exists())

    def test_processing_errors_are_acknowledged(self):
        payload = self.charge("ref-bad", 5000, {"type": "wallet", "agentId": 999999})

        response = self.post_event(payload)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(PaymentTransaction.objects.filter(reference="ref-bad", status="SUCCESS").exists())


class PaystackInitializeViewTests(PaystackTestCase):
    def setUp(self):
        super().setUp()
        self.url = reverse("paystack-initialize")

    def test_amount_is_required(self):
        self.client.force_authenticate(user=self.agent)

        response = self.client.post(self.url, {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "Amount is required")

    @patch("utils.paystack.PaystackClient.initialize")
    def test_agent_funding_returns_paystack_response(self, mock_initialize):
        paystack_body = {"status": True, "data": {"authorization_url": "https://checkout.paystack.com/xyz"}}
        mock_initialize.return_value = PaymentSession(reference="r", amount=Decimal("50"), data=paystack_body)
        self.client.force_authenticate(user=self.agent)

        response = self.client.post(self.url, {"amount": 50}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, paystack_body)
        txn = PaymentTransaction.objects.get()
        self.assertEqual(txn.purpose, "wallet")
        self.assertEqual(txn.user, self.agent)
        self.assertEqual(txn.amount, Decimal("50.00"))
        self.assertEqual(txn.status, "PENDING")

    def test_non_agents_cannot_fund_a_wallet(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(self.url, {"amount": 50}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(PaymentTransaction.objects.exists())


class PaymentStatusTests(PaystackTestCase):
    def setUp(self):
        super().setUp()
        self.txn = PaymentTransaction.objects.create(
            user=self.agent,
            reference="ref-pending",
            amount=Decimal("20.00"),
            purpose="wallet",
            metadata={"type": "wallet", "agentId": self.agent.account.pk},
        )

    def verified(self, status_):
        return GatewayEvent(
            event=f"charge.{status_}",
            reference="ref-pending",
            amount_minor=2000,
            metadata={"type": "wallet", "agentId": self.agent.account.pk},
        )

    def test_other_users_cannot_see_transaction(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.get(reverse("payment-status", args=["ref-pending"]))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    @patch("utils.paystack.PaystackClient.verify_transaction")
    def test_pending_transaction_is_rechecked(self, mock_verify):
        mock_verify.return_value = self.verified("success")
        self.client.force_authenticate(user=self.agent)

        response = self.client.get(reverse("payment-status", args=["ref-pending"]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "SUCCESS")
        self.assertEqual(Account.objects.get(pk=self.agent.account.pk).balance, Decimal("30.00"))

    @patch("utils.paystack.PaystackClient.verify_transaction")
    def test_verify_pending_payments_task(self, mock_verify):
        mock_verify.return_value = self.verified("abandoned")
        PaymentTransaction.objects.filter(pk=self.txn.pk).update(created_at=timezone.now() - timedelta(minutes=30))
        PaymentTransaction.objects.create(user=self.agent, reference="ref-new", amount=Decimal("5.00"))

        result = verify_pending_payments()

        self.assertEqual(result, "Verification task completed. Checked 1 payments.")
        mock_verify.assert_called_once_with("ref-pending")
        self.txn.refresh_from_db()
        self.assertEqual(self.txn.status, "FAILED")
        self.assertEqual(PaymentTransaction.objects.get(reference="ref-new").status, "PENDING")
