from __future__ import annotations

import hashlib
import hmac
import json
import logging
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

import requests
from django.conf import settings

from utils.exceptions import ConfigurationError, GatewayError, SignatureMismatch, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    """An initialized Paystack transaction. ``data`` is Paystack's response as-is."""

    reference: str
    amount: Decimal
    data: dict = field(default_factory=dict)

    @property
    def authorization_url(self):
        payload = self.data.get("data") if isinstance(self.data, dict) else None
        return payload.get("authorization_url") if isinstance(payload, dict) else None


@dataclass(frozen=True)
class GatewayEvent:
    event: str
    reference: str
    amount_minor: int
    metadata: dict = field(default_factory=dict)

    @property
    def amount(self):
        return from_minor_units(self.amount_minor)


def to_minor_units(amount):
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount_minor):
    return (Decimal(int(amount_minor or 0)) / 100).quantize(Decimal("0.01"))


def _metadata(value):
    # Paystack echoes metadata back either as an object or as a JSON string.
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return value if isinstance(value, dict) else {}


class PaystackClient:
    def __init__(self, secret_key, base_url="https://api.paystack.co", *, currency="GHS", timeout=30, session=None):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.currency = currency
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls):
        return cls(
            secret_key=settings.PAYSTACK_SECRET_KEY,
            base_url=settings.PAYSTACK_BASE_URL,
            currency=settings.PAYSTACK_CURRENCY,
        )

    def ensure_configured(self):
        if not self.secret_key:
            raise ConfigurationError("Paystack not configured")
        return self.secret_key

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.ensure_configured()}",
            "Content-Type": "application/json",
        }

    def initialize(self, amount, email, metadata, callback_url=None, reference=None) -> PaymentSession:
        """Open a Paystack transaction for ``amount`` GHS."""
        headers = self._headers()
        if not email:
            raise ValidationError("An email address is required for Paystack payments")

        reference = reference or uuid.uuid4().hex
        payload = {
            "amount": to_minor_units(amount),
            "email": email,
            "currency": self.currency,
            "reference": reference,
            "metadata": metadata,
        }
        if callback_url:
            payload["callback_url"] = callback_url

        try:
            res = self.session.post(
                f"{self.base_url}/transaction/initialize",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            data = res.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Paystack initialization for {reference} failed: {e}")
            raise GatewayError() from e

        return PaymentSession(reference=reference, amount=Decimal(str(amount)), data=data)

    def verify_transaction(self, reference) -> GatewayEvent:
        """Fetch the current state of a transaction from Paystack.

        The result is shaped like the matching webhook event, so a verified
        success can be reconciled exactly as if ``charge.success`` arrived.
        """
        res = self.session.get(
            f"{self.base_url}/transaction/verify/{reference}",
            headers=self._headers(),
            timeout=self.timeout,
        )
        res.raise_for_status()
        body = res.json()
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            data = {}
        status = data.get("status") or "unknown"
        return GatewayEvent(
            event=f"charge.{status}",
            reference=data.get("reference") or reference,
            amount_minor=int(data.get("amount") or 0),
            metadata=_metadata(data.get("metadata")),
        )

    def verify_signature(self, raw_body, signature):
        secret = self.ensure_configured()
        expected = hmac.new(secret.encode(), raw_body or b"", hashlib.sha512).hexdigest()
        if not signature or not hmac.compare_digest(expected.encode(), str(signature).encode()):
            raise SignatureMismatch()

    def parse_event(self, raw_body) -> GatewayEvent:
        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError as e:
            raise ValidationError("Webhook body is not valid JSON") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            data = {}
        return GatewayEvent(
            event=str(payload.get("event") or "") if isinstance(payload, dict) else "",
            reference=str(data.get("reference") or ""),
            amount_minor=int(data.get("amount") or 0),
            metadata=_metadata(data.get("metadata")),
        )
