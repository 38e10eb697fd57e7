import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import F

from utils.exceptions import InsufficientFunds, NotFound, ValidationError

from .models import Account

logger = logging.getLogger(__name__)


def _amount(value):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Invalid amount")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Invalid amount")
    return amount.quantize(Decimal("0.01"))


class WalletLedger:
    """Wallet balances in GHS.

    Every mutation is one conditional UPDATE, so two requests debiting the
    same wallet can never both pass the balance check.
    """

    def balance(self, account_id):
        balance = Account.objects.filter(pk=account_id).values_list("balance", flat=True).first()
        if balance is None:
            raise NotFound("Account not found")
        return balance

    def credit(self, account_id, amount):
        amount = _amount(amount)
        with transaction.atomic():
            updated = Account.objects.filter(pk=account_id).update(balance=F("balance") + amount)
            if not updated:
                raise NotFound("Account not found")
            balance = self.balance(account_id)
        logger.info(f"Credited GHS {amount} to account {account_id}, balance now GHS {balance}")
        return balance

    def debit(self, account_id, amount):
        amount = _amount(amount)
        with transaction.atomic():
            updated = Account.objects.filter(pk=account_id, balance__gte=amount).update(
                balance=F("balance") - amount
            )
            balance = self.balance(account_id)
        if not updated:
            logger.warning(f"Refused debit of GHS {amount} from account {account_id} (balance GHS {balance})")
            raise InsufficientFunds(
                f"Insufficient wallet balance. You need GHS {amount:.2f}, but have GHS {balance:.2f}"
            )
        logger.info(f"Debited GHS {amount} from account {account_id}, balance now GHS {balance}")
        return balance
