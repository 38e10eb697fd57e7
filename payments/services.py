import logging

from django.db import transaction

from .models import PaymentTransaction

logger = logging.getLogger(__name__)


class PaystackWebhookHandler:
    """Applies confirmed Paystack charges: wallet top-ups and order payments."""

    def __init__(self, gateway, ledger, checkout):
        self.gateway = gateway
        self.ledger = ledger
        self.checkout = checkout

    def handle(self, raw_body, signature):
        """Verify and apply a webhook. Raises SignatureMismatch before touching anything."""
        self.gateway.verify_signature(raw_body, signature)
        event = self.gateway.parse_event(raw_body)
        return self.reconcile(event)

    def reconcile(self, event):
        if event.event != "charge.success":
            logger.info(f"Ignoring Paystack event {event.event} for {event.reference}")
            return None

        metadata = event.metadata
        kind = metadata.get("type")
        if kind == "wallet":
            # Claim and credit commit together; a failed credit leaves the charge unclaimed.
            with transaction.atomic():
                if not self._claim(event):
                    logger.info(f"Paystack charge {event.reference} already applied")
                    return None
                return self._credit_wallet(event)

        # Order charges are claimed first so each order commits before its vendor call.
        with transaction.atomic():
            claimed = self._claim(event)
        if not claimed:
            logger.info(f"Paystack charge {event.reference} already applied")
            return None

        if kind == "order":
            try:
                return self.checkout.fulfil_gateway_payment(metadata)
            except Exception:
                logger.error(f"Paystack charge {event.reference} is paid but fulfilment did not finish")
                raise

        logger.warning(f"Paystack charge {event.reference} has unknown metadata type {kind!r}")
        return None

    def _credit_wallet(self, event):
        agent_id = event.metadata.get("agentId")
        if agent_id:
            return self.ledger.credit(agent_id, event.amount)
        logger.warning(f"Paystack wallet charge {event.reference} has no agentId")
        return None

    def _claim(self, event):
        """Mark the charge's transaction paid. False if it was already applied."""
        if not event.reference:
            return True
        txn, _ = PaymentTransaction.objects.select_for_update().get_or_create(
            reference=event.reference,
            defaults={
                "amount": event.amount,
                "purpose": event.metadata.get("type") or "order",
                "metadata": event.metadata,
            },
        )
        if txn.status == "SUCCESS":
            return False
        txn.status = "SUCCESS"
        txn.save(update_fields=["status", "updated_at"])
        return True

    def refresh(self, txn):
        """Re-check a pending transaction with Paystack and apply it if it has been paid."""
        event = self.gateway.verify_transaction(txn.reference)
        if event.event == "charge.success":
            self.reconcile(event)
        elif event.event in ("charge.failed", "charge.abandoned", "charge.reversed"):
            txn.status = "FAILED"
            txn.save(update_fields=["status", "updated_at"])
        txn.refresh_from_db()
        return txn
