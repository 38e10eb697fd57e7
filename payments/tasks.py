import logging
from datetime import timedelta

from celery import shared_task
from django.apps import apps
from django.conf import settings
from django.utils import timezone

from .models import PaymentTransaction

logger = logging.getLogger(__name__)


@shared_task
def verify_pending_payments():
    """
    Periodically re-checks Paystack transactions still PENDING after
    PAYSTACK_VERIFY_AFTER_MINUTES and applies the ones that were paid.
    This acts as a fallback for webhooks that never arrived.
    """
    time_threshold = timezone.now() - timedelta(minutes=settings.PAYSTACK_VERIFY_AFTER_MINUTES)
    pending_transactions = PaymentTransaction.objects.filter(status="PENDING", created_at__lt=time_threshold)
    handler = apps.get_app_config("payments").webhooks

    logger.info(f"Found {pending_transactions.count()} pending payments to verify.")

    checked = 0
    for transaction in pending_transactions:
        checked += 1
        try:
            transaction = handler.refresh(transaction)
            logger.info(f"Payment {transaction.reference} is {transaction.status}")
        except Exception as e:
            logger.error(f"Error verifying payment {transaction.reference}: {str(e)}")

    return f"Verification task completed. Checked {checked} payments."
