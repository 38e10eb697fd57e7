import logging

from celery import shared_task

from accounts.models import Account

logger = logging.getLogger(__name__)


@shared_task
def reset_daily_totals():
    """Zero every account's daily counters. Scheduled for 00:00 UTC."""
    updated = Account.objects.update(total_orders_today=0, total_gb_sent_today=0, total_spent_today=0)
    logger.info(f"Daily totals reset for {updated} accounts.")
    return updated
