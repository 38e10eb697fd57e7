from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone

import requests
from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from utils.exceptions import UnknownNetwork, UnsupportedVolume

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkOffer:
    offer_slug: str
    endpoint: str
    volumes: frozenset


NETWORKS = {
    "MTN": NetworkOffer(
        offer_slug="master_beneficiary_data_bundle",
        endpoint="mtn",
        volumes=frozenset([1, 2, 3, 4, 5, 6, 7, 8, 10, 15, 20, 25, 30, 40, 50, 100]),
    ),
    "Telecel": NetworkOffer(
        offer_slug="telecel_expiry_bundle",
        endpoint="telecel",
        volumes=frozenset([5, 10, 15, 20, 25, 30, 40, 50, 100]),
    ),
    "AirtelTigo": NetworkOffer(
        offer_slug="ishare_data_bundle",
        endpoint="at",
        volumes=frozenset(list(range(1, 16)) + [20]),
    ),
}

WEBHOOK_EVENTS = ("order.status.updated", "order.status_update")
WEBHOOK_STATUSES = ("pending", "processing", "delivered", "failed", "cancelled", "refunded", "resolved")

# Vendor errors containing these are validation failures and are not retried.
NON_RETRYABLE_MARKERS = ("not available", "Invalid", "must be")


@dataclass(frozen=True)
class PurchaseResult:
    success: bool
    transaction_id: str | None = None
    reference: str | None = None
    status: str | None = None
    message: str | None = None
    error: str | None = None
    code: int | None = None
    amount: object = None
    currency: str | None = None
    raw: dict = field(default_factory=dict)
    retryable: bool = True

    @classmethod
    def failed(cls, error, *, code=None, details=None, retryable=None):
        if retryable is None:
            retryable = not any(marker in error for marker in NON_RETRYABLE_MARKERS)
        return cls(
            success=False,
            error=error,
            code=code,
            raw=details or {},
            retryable=retryable,
        )


@dataclass(frozen=True)
class VendorWebhookEvent:
    event: str
    order_id: str | None
    reference: str | None
    status: str
    recipient: str | None
    volume: float | None
    timestamp: datetime
    accepted: bool = True


@dataclass(frozen=True)
class RejectedWebhook:
    reason: str
    accepted: bool = False


def normalize_phone(phone_number):
    """Return the number as a 233-prefixed digit string."""
    if not phone_number:
        return ""
    digits = re.sub(r"\D", "", str(phone_number))
    if digits.startswith("0") and len(digits) == 10:
        return "233" + digits[1:]
    if len(digits) == 9:
        return "233" + digits
    return digits


def extract_volume(bundle_size):
    if isinstance(bundle_size, (int, float)):
        return int(bundle_size)
    match = re.search(r"\d+(\.\d+)?", str(bundle_size or ""))
    return int(float(match.group(0))) if match else 0


def lookup_network(network):
    for name, offer in NETWORKS.items():
        if name.lower() == str(network or "").strip().lower():
            return name, offer
    raise UnknownNetwork(f"No offer configured for network: {network}")


def _parse_timestamp(value):
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=dt_timezone.utc)
    if isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is not None:
            if timezone.is_naive(parsed):
                parsed = timezone.make_aware(parsed, dt_timezone.utc)
            return parsed
    return timezone.now()


def _parse_volume(value):
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class Portal02Client:
    """Client for the Portal-02 data bundle API."""

    def __init__(
        self,
        api_key,
        base_url,
        webhook_url,
        *,
        timeout=30,
        max_attempts=2,
        session=None,
        sleep=time.sleep,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.session = session or requests.Session()
        self.sleep = sleep

    @classmethod
    def from_settings(cls):
        client = cls(
            api_key=settings.PORTAL02_API_KEY,
            base_url=settings.PORTAL02_BASE_URL,
            webhook_url=f"{settings.BACKEND_URL.rstrip('/')}/api/webhooks/portal02/",
            timeout=settings.PORTAL02_TIMEOUT,
            max_attempts=settings.PORTAL02_MAX_ATTEMPTS,
        )
        logger.info(f"Portal-02 client ready. Base: {client.base_url}, webhook: {client.webhook_url}")
        return client

    def build_request(self, phone_number, bundle_size, network, reference=None):
        """Validate a purchase and return the (url, payload) pair to send."""
        name, offer = lookup_network(network)
        volume = extract_volume(bundle_size)
        if volume <= 0:
            raise UnsupportedVolume("Invalid bundle size")
        if volume not in offer.volumes:
            raise UnsupportedVolume(f"{volume}GB not available for {name}")

        payload = {
            "type": "single",
            "volume": volume,
            "phone": normalize_phone(phone_number),
            "offerSlug": offer.offer_slug,
            "webhookUrl": self.webhook_url,
        }
        if reference:
            payload["reference"] = reference
        return f"{self.base_url}/order/{offer.endpoint}", payload

    def purchase(self, phone_number, bundle_size, network, reference=None) -> PurchaseResult:
        try:
            url, payload = self.build_request(phone_number, bundle_size, network, reference)
        except (UnknownNetwork, UnsupportedVolume) as e:
            return PurchaseResult.failed(str(e), retryable=False)

        headers = {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            res = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Portal-02 request to {url} failed: {e}")
            return PurchaseResult.failed(str(e) or "Network error", code=500)

        try:
            data = res.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not res.ok:
            message = data.get("message") or data.get("error") or f"HTTP {res.status_code}"
            logger.warning(f"Portal-02 rejected order {reference}: {message}")
            return PurchaseResult.failed(str(message), code=res.status_code, details=data)

        transaction_id = data.get("orderId") or data.get("id")
        return PurchaseResult(
            success=True,
            transaction_id=str(transaction_id) if transaction_id else None,
            reference=str(data.get("reference") or transaction_id or "") or None,
            status=data.get("status") or "pending",
            message="Order submitted to Portal-02",
            code=res.status_code,
            amount=data.get("totalAmount"),
            currency=data.get("currency"),
            raw=data,
        )

    def purchase_with_retry(self, phone_number, bundle_size, network, reference=None, max_attempts=None):
        attempts = max_attempts or self.max_attempts
        result = None
        for attempt in range(1, attempts + 1):
            result = self.purchase(phone_number, bundle_size, network, reference)
            if result.success or not result.retryable:
                return result
            if attempt < attempts:
                wait = min(2 ** (attempt - 1), 5)
                logger.info(f"Portal-02 attempt {attempt} for {reference} failed, retrying in {wait}s")
                self.sleep(wait)
        return result or PurchaseResult.failed("All purchase attempts failed")

    def parse_webhook(self, payload):
        if not isinstance(payload, dict):
            return RejectedWebhook("Unrecognized payload")

        event = payload.get("event") or payload.get("event_type")
        if event not in WEBHOOK_EVENTS:
            return RejectedWebhook(f"Unknown event: {event}")

        status = payload.get("status")
        if status not in WEBHOOK_STATUSES:
            return RejectedWebhook(f"Invalid status: {status}")

        order_id = payload.get("orderId") or payload.get("order_id") or payload.get("id")
        reference = payload.get("reference") or order_id
        return VendorWebhookEvent(
            event=event,
            order_id=str(order_id) if order_id else None,
            reference=str(reference) if reference else None,
            status=status,
            recipient=payload.get("recipient"),
            volume=_parse_volume(payload.get("volume")),
            timestamp=_parse_timestamp(payload.get("timestamp")),
        )
