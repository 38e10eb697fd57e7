import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Account

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_account(sender, instance, created, **kwargs):
    """Every user gets an account holding role, wallet and counters."""
    if created:
        Account.objects.get_or_create(user=instance)
        logger.info(f"Created account for user {instance.pk}")
