import hashlib
import hmac
import json
from decimal import Decimal
from unittest import mock

import requests
from django.test import SimpleTestCase

from utils.exceptions import ConfigurationError, GatewayError, SignatureMismatch
from utils.paystack import PaystackClient, from_minor_units, to_minor_units
from utils.portal02 import Portal02Client, extract_volume, normalize_phone


def vendor_response(status_code=200, body=None):
    res = mock.Mock(status_code=status_code, ok=200 <= status_code < 300)
    res.json.return_value = body if body is not None else {}
    return res


class Portal02ClientTests(SimpleTestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.sleep = mock.Mock()
        self.client = Portal02Client(
            api_key="dk_test",
            base_url="https://portal.test/api/v1/",
            webhook_url="https://backend.test/api/webhooks/portal02/",
            session=self.session,
            sleep=self.sleep,
        )

    def test_normalize_phone_local_and_international_formats(self):
        self.assertEqual(normalize_phone("0241234567"), "233241234567")
        self.assertEqual(normalize_phone("+233241234567"), "233241234567")
        self.assertEqual(normalize_phone("241234567"), "233241234567")
        self.assertEqual(normalize_phone("024 123 4567"), "233241234567")
        self.assertEqual(normalize_phone(""), "")

    def test_extract_volume(self):
        self.assertEqual(extract_volume("5GB"), 5)
        self.assertEqual(extract_volume(10), 10)
        self.assertEqual(extract_volume("unlimited"), 0)

    def test_purchase_posts_to_network_endpoint(self):
        self.session.post.return_value = vendor_response(
            201, {"orderId": "P02-1", "reference": "ORD-1", "status": "processing", "totalAmount": 20}
        )

        result = self.client.purchase("0241234567", "5GB", "MTN", "ORD-1")

        self.assertTrue(result.success)
        self.assertEqual(result.transaction_id, "P02-1")
        self.assertEqual(result.reference, "ORD-1")
        self.assertEqual(result.status, "processing")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://portal.test/api/v1/order/mtn")
        self.assertEqual(
            kwargs["json"],
            {
                "type": "single",
                "volume": 5,
                "phone": "233241234567",
                "offerSlug": "master_beneficiary_data_bundle",
                "webhookUrl": "https://backend.test/api/webhooks/portal02/",
                "reference": "ORD-1",
            },
        )
        self.assertEqual(kwargs["headers"]["x-api-key"], "dk_test")

    def test_airteltigo_uses_short_endpoint_and_ishare_offer(self):
        self.session.post.return_value = vendor_response(200, {"id": "AT-9"})

        result = self.client.purchase("0271234567", "2GB", "AirtelTigo")

        self.assertTrue(result.success)
        self.assertEqual(result.transaction_id, "AT-9")
        self.assertEqual(result.reference, "AT-9")
        self.assertEqual(result.status, "pending")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://portal.test/api/v1/order/at")
        self.assertEqual(kwargs["json"]["offerSlug"], "ishare_data_bundle")
        self.assertNotIn("reference", kwargs["json"])

    def test_unsupported_volume_fails_without_calling_vendor(self):
        result = self.client.purchase_with_retry("0201234567", "7GB", "Telecel", "ORD-2")

        self.assertFalse(result.success)
        self.assertFalse(result.retryable)
        self.assertEqual(result.error, "7GB not available for Telecel")
        self.session.post.assert_not_called()
        self.sleep.assert_not_called()

    def test_unknown_network_fails_closed(self):
        result = self.client.purchase("0241234567", "1GB", "Vodafone")

        self.assertFalse(result.success)
        self.assertIn("Vodafone", result.error)
        self.session.post.assert_not_called()

    def test_vendor_rejection_keeps_message_and_code(self):
        self.session.post.return_value = vendor_response(422, {"message": "Phone must be a valid number"})

        result = self.client.purchase("0241234567", "1GB", "MTN")

        self.assertFalse(result.success)
        self.assertEqual(result.code, 422)
        self.assertEqual(result.error, "Phone must be a valid number")
        self.assertEqual(result.raw, {"message": "Phone must be a valid number"})

    def test_non_json_error_body_falls_back_to_http_status(self):
        res = vendor_response(503)
        res.json.side_effect = ValueError("no json")
        self.session.post.return_value = res

        result = self.client.purchase("0241234567", "1GB", "MTN")

        self.assertFalse(result.success)
        self.assertEqual(result.error, "HTTP 503")

    def test_transient_failures_are_retried_with_backoff(self):
        self.session.post.return_value = vendor_response(500, {"message": "Server busy"})

        result = self.client.purchase_with_retry("0241234567", "1GB", "MTN", "ORD-3")

        self.assertFalse(result.success)
        self.assertEqual(self.session.post.call_count, 2)
        self.sleep.assert_called_once_with(1)

    def test_backoff_doubles_and_is_capped(self):
        self.session.post.side_effect = requests.ConnectionError("connection reset")

        result = self.client.purchase_with_retry("0241234567", "1GB", "MTN", max_attempts=5)

        self.assertFalse(result.success)
        self.assertEqual(result.code, 500)
        self.assertEqual(self.session.post.call_count, 5)
        self.assertEqual([c.args[0] for c in self.sleep.call_args_list], [1, 2, 4, 5])

    def test_validation_errors_from_vendor_are_not_retried(self):
        self.session.post.return_value = vendor_response(400, {"message": "Invalid phone number"})

        self.client.purchase_with_retry("0241234567", "1GB", "MTN")

        self.assertEqual(self.session.post.call_count, 1)
        self.sleep.assert_not_called()

    def test_retry_stops_on_success(self):
        self.session.post.side_effect = [
            vendor_response(502, {"error": "Bad gateway"}),
            vendor_response(200, {"orderId": "P02-7"}),
        ]

        result = self.client.purchase_with_retry("0241234567", "1GB", "MTN")

        self.assertTrue(result.success)
        self.assertEqual(result.transaction_id, "P02-7")

    def test_parse_webhook(self):
        event = self.client.parse_webhook(
            {
                "event": "order.status.updated",
                "orderId": "P02-1",
                "status": "delivered",
                "recipient": "233241234567",
                "volume": 5,
                "timestamp": "2026-01-02T10:00:00Z",
            }
        )

        self.assertTrue(event.accepted)
        self.assertEqual(event.order_id, "P02-1")
        self.assertEqual(event.reference, "P02-1")
        self.assertEqual(event.volume, 5.0)
        self.assertEqual(event.timestamp.year, 2026)

    def test_parse_webhook_accepts_alternate_field_names(self):
        event = self.client.parse_webhook(
            {"event_type": "order.status_update", "order_id": 12, "reference": "ORD-1", "status": "failed"}
        )

        self.assertTrue(event.accepted)
        self.assertEqual(event.order_id, "12")
        self.assertEqual(event.reference, "ORD-1")
        self.assertIsNotNone(event.timestamp)

    def test_parse_webhook_rejects_unknown_event_and_status(self):
        unknown = self.client.parse_webhook({"event": "wallet.topup", "status": "delivered"})
        invalid = self.client.parse_webhook({"event": "order.status.updated", "status": "lost"})

        self.assertFalse(unknown.accepted)
        self.assertEqual(unknown.reason, "Unknown event: wallet.topup")
        self.assertFalse(invalid.accepted)
        self.assertEqual(invalid.reason, "Invalid status: lost")
        self.assertFalse(self.client.parse_webhook(["not", "a", "dict"]).accepted)


class PaystackClientTests(SimpleTestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.client = PaystackClient("sk_test_secret", "https://paystack.test", session=self.session)

    def sign(self, body):
        return hmac.new(b"sk_test_secret", body, hashlib.sha512).hexdigest()

    def test_minor_unit_conversion(self):
        self.assertEqual(to_minor_units(Decimal("12.50")), 1250)
        self.assertEqual(to_minor_units(3), 300)
        self.assertEqual(from_minor_units(1999), Decimal("19.99"))

    def test_initialize_sends_pesewas_and_returns_response_verbatim(self):
        paystack_body = {"status": True, "data": {"authorization_url": "https://checkout.paystack.com/abc"}}
        self.session.post.return_value = mock.Mock(json=mock.Mock(return_value=paystack_body))

        session = self.client.initialize(
            Decimal("45.50"), "buyer@example.com", {"type": "order"}, callback_url="https://app.test/payment-return"
        )

        self.assertEqual(session.data, paystack_body)
        self.assertEqual(session.authorization_url, "https://checkout.paystack.com/abc")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://paystack.test/transaction/initialize")
        self.assertEqual(kwargs["json"]["amount"], 4550)
        self.assertEqual(kwargs["json"]["currency"], "GHS")
        self.assertEqual(kwargs["json"]["reference"], session.reference)
        self.assertEqual(kwargs["json"]["callback_url"], "https://app.test/payment-return")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer sk_test_secret")

    def test_initialize_network_error_raises_gateway_error(self):
        self.session.post.side_effect = requests.Timeout("timed out")

        with self.assertRaises(GatewayError):
            self.client.initialize(10, "buyer@example.com", {})

    def test_missing_secret_is_a_configuration_error(self):
        client = PaystackClient(None, session=self.session)

        with self.assertRaises(ConfigurationError):
            client.initialize(10, "buyer@example.com", {})
        with self.assertRaises(ConfigurationError):
            client.verify_signature(b"{}", "anything")
        self.session.post.assert_not_called()

    def test_verify_signature(self):
        body = b'{"event": "charge.success"}'

        self.client.verify_signature(body, self.sign(body))
        with self.assertRaises(SignatureMismatch):
            self.client.verify_signature(body, self.sign(b"tampered"))
        with self.assertRaises(SignatureMismatch):
            self.client.verify_signature(body, None)

    def test_parse_event_decodes_string_metadata(self):
        body = json.dumps(
            {
                "event": "charge.success",
                "data": {"reference": "ref-1", "amount": 5000, "metadata": json.dumps({"type": "wallet", "agentId": 4})},
            }
        ).encode()

        event = self.client.parse_event(body)

        self.assertEqual(event.event, "charge.success")
        self.assertEqual(event.reference, "ref-1")
        self.assertEqual(event.amount, Decimal("50.00"))
        self.assertEqual(event.metadata, {"type": "wallet", "agentId": 4})

    def test_verify_transaction_shapes_result_like_a_webhook(self):
        res = mock.Mock()
        res.json.return_value = {"data": {"status": "success", "reference": "ref-2", "amount": 2500, "metadata": {}}}
        self.session.get.return_value = res

        event = self.client.verify_transaction("ref-2")

        self.assertEqual(event.event, "charge.success")
        self.assertEqual(event.amount, Decimal("25.00"))
        self.assertEqual(self.session.get.call_args.args[0], "https://paystack.test/transaction/verify/ref-2")
