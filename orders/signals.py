import logging

from django.db.models import F
from django.db.models.signals import post_save
from django.dispatch import receiver

from accounts.models import Account

from .lifecycle import gb_from_label
from .models import Order

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Order)
def on_order_created(sender, instance, created, **kwargs):
    """
    Bumps the buyer's daily counters and lifetime GB total when an order is
    first saved. Status updates on existing orders are ignored.
    """
    if not created:
        return

    gb = gb_from_label(instance.data_amount)
    Account.objects.filter(user_id=instance.user_id).update(
        total_orders_today=F("total_orders_today") + 1,
        total_gb_sent_today=F("total_gb_sent_today") + gb,
        total_spent_today=F("total_spent_today") + instance.price,
        total_gb_purchased=F("total_gb_purchased") + gb,
    )
    logger.info(f"Counted order {instance.pk} ({gb}GB, GHS {instance.price}) for user {instance.user_id}")
