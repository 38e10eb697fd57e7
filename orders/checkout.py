from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F

from accounts.ledger import WalletLedger
from accounts.models import Account
from catalog.models import Product
from payments.models import PaymentTransaction
from utils.exceptions import EmptyCart, Forbidden, InsufficientFunds, NotFound, ValidationError
from utils.paystack import PaystackClient
from utils.portal02 import Portal02Client

from .lifecycle import OrderLifecycleManager
from .models import CartItem, Order

logger = logging.getLogger(__name__)

PAYMENT_WALLET = "wallet"
PAYMENT_PAYSTACK = "paystack"


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int = 1
    phone_number: str = ""

    @classmethod
    def from_metadata(cls, item):
        """Rebuild a line from the cart snapshot stored in Paystack metadata."""
        if not isinstance(item, dict):
            return None
        try:
            product_id = int(item.get("productId"))
            quantity = int(item.get("quantity") or 1)
        except (TypeError, ValueError):
            return None
        return cls(product_id=product_id, quantity=max(quantity, 1), phone_number=item.get("phoneNumber") or "")

    def as_metadata(self):
        return {"productId": self.product_id, "quantity": self.quantity, "phoneNumber": self.phone_number}


@dataclass(frozen=True)
class PricedLine:
    line: CartLine
    product: Product
    unit_price: Decimal


@dataclass
class OrderBatch:
    orders: list = field(default_factory=list)
    total: Decimal = Decimal("0.00")
    balance: Decimal | None = None


class CheckoutService:
    """Turns carts and single-product purchases into paid, dispatched orders."""

    def __init__(self, ledger, vendor, gateway, lifecycle, callback_url=None):
        self.ledger = ledger
        self.vendor = vendor
        self.gateway = gateway
        self.lifecycle = lifecycle
        self.callback_url = callback_url

    # Cart

    def get_cart(self, user):
        return CartItem.objects.filter(user=user).select_related("product")

    def add_to_cart(self, user, product_id, quantity=1, phone_number=""):
        try:
            quantity = int(quantity or 1)
        except (TypeError, ValueError):
            raise ValidationError("quantity must be a positive integer")
        if quantity < 1:
            raise ValidationError("quantity must be a positive integer")
        if not Product.objects.filter(pk=product_id).exists():
            raise NotFound("Product not found")

        phone_number = (phone_number or "").strip()
        with transaction.atomic():
            item, created = CartItem.objects.get_or_create(
                user=user,
                product_id=product_id,
                phone_number=phone_number,
                defaults={"quantity": quantity},
            )
            if not created:
                CartItem.objects.filter(pk=item.pk).update(quantity=F("quantity") + quantity)
        logger.info(f"Cart of user {user.pk}: +{quantity} x product {product_id} for {phone_number or '-'}")
        return self.get_cart(user)

    def remove_from_cart(self, user, product_id):
        CartItem.objects.filter(user=user, product_id=product_id).delete()
        return self.get_cart(user)

    def clear_cart(self, user):
        deleted, _ = CartItem.objects.filter(user=user).delete()
        logger.info(f"Cleared {deleted} cart lines for user {user.pk}")

    def cart_lines(self, user):
        return [
            CartLine(product_id=item.product_id, quantity=item.quantity, phone_number=item.phone_number)
            for item in CartItem.objects.filter(user=user)
        ]

    # Pricing and fulfilment

    def price_lines(self, lines, role):
        """Role prices for every line whose product still exists; missing products are skipped."""
        products = Product.objects.in_bulk({line.product_id for line in lines})
        priced = []
        total = Decimal("0.00")
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                logger.warning(f"Skipping cart line for missing product {line.product_id}")
                continue
            unit_price = product.price_for_role(role)
            priced.append(PricedLine(line=line, product=product, unit_price=unit_price))
            total += unit_price * line.quantity
        return priced, total

    def fulfil(self, user, priced_lines):
        """Create one paid order per unit and dispatch those with a phone number, one at a time."""
        orders = []
        for priced in priced_lines:
            phone_number = priced.line.phone_number
            for _ in range(priced.line.quantity):
                order = self.lifecycle.create_order(
                    user,
                    priced.product,
                    priced.unit_price,
                    phone_number=phone_number,
                    status=Order.STATUS_PROCESSING if phone_number else Order.STATUS_PENDING,
                    payment_status=Order.PAYMENT_SUCCESS,
                )
                if phone_number:
                    order = self.lifecycle.dispatch(order, priced.product)
                orders.append(order)
        return orders

    # Payment

    def checkout(self, user, payment_method=PAYMENT_PAYSTACK):
        account = user.account
        lines = self.cart_lines(user)
        priced, total = self.price_lines(lines, account.role)
        if not priced:
            raise EmptyCart()
        logger.info(f"Checkout for user {user.pk}: {len(priced)} lines, GHS {total}, via {payment_method}")

        if payment_method == PAYMENT_WALLET:
            if not account.is_agent:
                raise Forbidden("Wallet payment only available for agents")
            balance = self.ledger.balance(account.pk)
            if balance < total:
                raise InsufficientFunds(
                    f"Insufficient wallet balance. You need GHS {total:.2f}, but have GHS {balance:.2f}"
                )
            balance = self.ledger.debit(account.pk, total)
            orders = self.fulfil(user, priced)
            self.clear_cart(user)
            logger.info(f"Wallet checkout for user {user.pk} created {len(orders)} orders")
            return OrderBatch(orders=orders, total=total, balance=balance)

        if payment_method != PAYMENT_PAYSTACK:
            raise ValidationError(f"Unknown payment method: {payment_method}")

        # Orders are created by the charge.success webhook; the cart stays until then.
        metadata = {"type": "order", "userId": user.pk, "cart": [line.as_metadata() for line in lines]}
        return self.start_gateway_payment(user, total, metadata)

    def pay_for_product(self, user, product_id, use_wallet=False, phone_number=""):
        account = user.account
        if account.is_agent and not account.is_verified:
            raise Forbidden("Agent not verified")
        product = Product.objects.filter(pk=product_id).first()
        if product is None:
            raise NotFound("Product not found")

        price = product.price_for_role(account.role)
        line = CartLine(product_id=product.pk, quantity=1, phone_number=(phone_number or "").strip())

        if use_wallet and account.role in (Account.ROLE_AGENT, Account.ROLE_ADMIN):
            balance = self.ledger.debit(account.pk, price)
            orders = self.fulfil(user, [PricedLine(line=line, product=product, unit_price=price)])
            return OrderBatch(orders=orders, total=price, balance=balance)

        metadata = {
            "type": "order",
            "userId": user.pk,
            "productId": product.pk,
            "phoneNumber": line.phone_number,
        }
        return self.start_gateway_payment(user, price, metadata)

    def fund_wallet(self, user, amount):
        """Start a Paystack payment that tops up the caller's wallet once confirmed."""
        account = user.account
        if not account.is_agent:
            raise Forbidden("Only agents have a wallet")
        try:
            amount = Decimal(str(amount))
        except ArithmeticError:
            raise ValidationError("Invalid amount")
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Invalid amount")
        return self.start_gateway_payment(user, amount, {"type": "wallet", "agentId": account.pk})

    def start_gateway_payment(self, user, amount, metadata):
        self.gateway.ensure_configured()
        email = user.email or user.username
        txn = PaymentTransaction.objects.create(
            user=user,
            reference=PaymentTransaction.new_reference(),
            amount=amount,
            email=email,
            purpose=metadata["type"],
            metadata=metadata,
        )
        try:
            session = self.gateway.initialize(
                amount=amount,
                email=email,
                metadata=metadata,
                callback_url=self.callback_url,
                reference=txn.reference,
            )
        except Exception:
            # If initialization fails, mark our transaction as FAILED
            txn.status = "FAILED"
            txn.save(update_fields=["status", "updated_at"])
            raise
        logger.info(f"Paystack session {txn.reference} opened for user {user.pk}: GHS {amount}")
        return session

    def fulfil_gateway_payment(self, metadata):
        """Create and dispatch the orders paid for by a confirmed Paystack charge."""
        user = get_user_model().objects.filter(pk=metadata.get("userId")).select_related("account").first()
        if user is None:
            logger.warning(f"Paystack order payment for unknown user {metadata.get('userId')}")
            return []

        if "cart" in metadata:
            lines = [CartLine.from_metadata(item) for item in metadata.get("cart") or []]
            lines = [line for line in lines if line is not None]
            clear_cart = bool(lines)
        else:
            line = CartLine.from_metadata(
                {"productId": metadata.get("productId"), "phoneNumber": metadata.get("phoneNumber")}
            )
            lines = [line] if line else []
            clear_cart = False

        priced, _ = self.price_lines(lines, user.account.role)
        orders = self.fulfil(user, priced)
        if clear_cart:
            self.clear_cart(user)
        logger.info(f"Paystack payment for user {user.pk} created {len(orders)} orders")
        return orders


def build_checkout_service():
    vendor = Portal02Client.from_settings()
    return CheckoutService(
        ledger=WalletLedger(),
        vendor=vendor,
        gateway=PaystackClient.from_settings(),
        lifecycle=OrderLifecycleManager(vendor),
        callback_url=f"{settings.FRONTEND_URL.rstrip('/')}/payment-return",
    )
