"""
Order state transitions.

    pending ──dispatch──> processing ──vendor webhook──> completed | failed
       └────────── dispatch rejected ──────────────────> failed

An order created with a phone number is dispatched inline and starts in
``processing``. After dispatch the vendor webhook is authoritative: each
event recomputes the status from the vendor status alone, so replaying an
event always lands on the same status.
"""
import logging
import math
import time

from django.db import transaction
from django.db.models import Q

from utils.exceptions import VendorError
from utils.portal02 import PurchaseResult

from .models import Order, ProcessingResult, WebhookHistory

logger = logging.getLogger(__name__)

COMPLETED_VENDOR_STATUSES = ("delivered", "resolved")
FAILED_VENDOR_STATUSES = ("failed", "cancelled", "refunded")


def gb_from_label(label):
    """Volume in GB of a label such as "5GB" or "512MB". Unparseable labels count as 0."""
    text = str(label or "").strip().upper()
    try:
        if text.endswith("GB"):
            value = float(text[:-2].strip())
        elif text.endswith("MB"):
            value = float(text[:-2].strip()) / 1024
        else:
            return 0.0
    except ValueError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def status_from_vendor(vendor_status):
    if vendor_status in COMPLETED_VENDOR_STATUSES:
        return Order.STATUS_COMPLETED
    if vendor_status in FAILED_VENDOR_STATUSES:
        return Order.STATUS_FAILED
    return Order.STATUS_PROCESSING


class OrderLifecycleManager:
    def __init__(self, vendor):
        self.vendor = vendor

    def create_order(
        self,
        user,
        product,
        price,
        phone_number="",
        status=Order.STATUS_PENDING,
        payment_status=Order.PAYMENT_PENDING,
    ):
        # Daily and lifetime counters are bumped by orders.signals on creation.
        order = Order.objects.create(
            user=user,
            product=product,
            price=price,
            data_amount=product.data_amount,
            product_name=product.name,
            phone_number=phone_number or "",
            status=status,
            payment_status=payment_status,
        )
        logger.info(f"Created order {order.pk} for user {user.pk}, product {product.pk} ({status})")
        return order

    def dispatch(self, order, product, reference=None):
        """Send one order to the vendor and record the outcome. Never raises."""
        reference = reference or f"ORD-{order.pk}-{int(time.time() * 1000)}"
        try:
            result = self.vendor.purchase_with_retry(
                order.phone_number, product.data_amount, product.network, reference
            )
        except Exception as e:
            logger.exception(f"Portal-02 dispatch for order {order.pk} raised")
            result = PurchaseResult.failed(str(e) or VendorError.default_message)
        return self.record_dispatch(order, result)

    def record_dispatch(self, order, result):
        with transaction.atomic():
            ProcessingResult.objects.update_or_create(
                order=order,
                item_index=0,
                defaults={
                    "success": result.success,
                    "transaction_id": result.transaction_id,
                    "reference": result.reference,
                    "message": result.message,
                    "error": None if result.success else (result.error or VendorError.default_message),
                    "status": result.status or ("processing" if result.success else "failed"),
                },
            )
            order.status = Order.STATUS_PROCESSING if result.success else Order.STATUS_FAILED
            vendor_order_id = result.transaction_id or result.reference
            if vendor_order_id:
                order.vendor_order_id = vendor_order_id
            order.save(update_fields=["status", "vendor_order_id", "updated_at"])

        if result.success:
            logger.info(f"Order {order.pk} accepted by Portal-02 as {order.vendor_order_id}")
        else:
            logger.error(f"Order {order.pk} dispatch failed: {result.error}")
        return order

    def find_order_for_event(self, event):
        keys = [key for key in (event.order_id, event.reference) if key]
        if not keys:
            return None
        match = (
            Q(vendor_order_id__in=keys)
            | Q(processing_results__transaction_id__in=keys)
            | Q(processing_results__reference__in=keys)
        )
        return Order.objects.filter(match).order_by("created_at", "pk").distinct().first()

    def apply_vendor_webhook(self, payload):
        """Reconcile a Portal-02 status event. Returns the updated order, or None if ignored."""
        event = self.vendor.parse_webhook(payload)
        if not event.accepted:
            logger.warning(f"Ignoring Portal-02 webhook: {event.reason}")
            return None

        with transaction.atomic():
            order = self.find_order_for_event(event)
            if order is None:
                logger.warning(
                    f"No order matches Portal-02 webhook (orderId={event.order_id}, reference={event.reference})"
                )
                return None

            order.status = status_from_vendor(event.status)
            order.save(update_fields=["status", "updated_at"])
            WebhookHistory.objects.create(
                order=order,
                event=event.event,
                vendor_order_id=event.order_id,
                reference=event.reference,
                status=event.status,
                recipient=event.recipient,
                volume=event.volume,
                timestamp=event.timestamp,
            )

        logger.info(f"Order {order.pk} updated to {order.status} (vendor status {event.status})")
        return order

    def orders_for_user(self, user, page=1, limit=10):
        orders = Order.objects.filter(user=user)
        page_data = self._paginate(orders, page, limit)
        page_data["completed_count"] = orders.filter(status=Order.STATUS_COMPLETED).count()
        return page_data

    def all_orders(self, page=1, limit=50):
        return self._paginate(Order.objects.select_related("user"), page, limit)

    @staticmethod
    def _paginate(queryset, page, limit):
        total = queryset.count()
        offset = (page - 1) * limit
        rows = queryset.prefetch_related("processing_results", "webhook_history")[offset : offset + limit]
        return {
            "orders": list(rows),
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit),
            },
        }
