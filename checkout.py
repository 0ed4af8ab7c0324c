"""
Checkout Initiator.

Turns a cart into a payment-gateway charge. Stock and prices are re-read from
the product store for every item; the cart's snapshots and anything the client
sends are never used for the amount.
"""

import logging
from typing import List, Tuple

from cart import CartManager
from errors import (
    EmptyCartError,
    GatewayFailure,
    InsufficientStockError,
    NotFoundError,
    PriceResolutionError,
    UnsupportedPaymentMethodError,
)
from schemas import Cart, CartItem, CheckoutRequest, CheckoutSession, PaymentIntent, Variant, describe_selector

logger = logging.getLogger(__name__)


class CheckoutInitiator:
    def __init__(self, carts: CartManager, products, payment_intents, gateway, currency: str = "usd"):
        self.carts = carts
        self.products = products
        self.payment_intents = payment_intents
        self.gateway = gateway
        self.currency = currency

    def initiate_checkout(self, user_id: str, request: CheckoutRequest) -> CheckoutSession:
        cart = self.carts.get_cart(user_id)
        if not cart.items:
            raise EmptyCartError()

        lines = self._validate_stock(cart)
        total = self._calculate_total(lines)

        if request.payment_method != "stripe":
            raise UnsupportedPaymentMethodError(f"Payment method {request.payment_method} is not supported")

        intent = self.gateway.create_payment_intent(
            amount=int(round(total * 100)),
            currency=self.currency,
            metadata={"user_id": user_id, "cart_id": cart.id or ""},
        )
        if not intent.client_secret:
            logger.error("Gateway intent %s for user %s has no client secret", intent.id, user_id)
            raise GatewayFailure("Failed to create payment intent")

        record_id = self.payment_intents.create(PaymentIntent(
            user_id=user_id,
            cart_id=cart.id,
            gateway=request.payment_method,
            status="pending",
            amount=total,
            currency=self.currency,
            shipping_address=request.shipping_address,
            gateway_response=intent.raw,
        ))
        logger.info("Checkout for user %s: %.2f %s, payment intent %s", user_id, total, self.currency, record_id)
        return CheckoutSession(client_secret=intent.client_secret, payment_intent_id=record_id)

    def get_payment_intent(self, user_id: str, payment_intent_id: str) -> PaymentIntent:
        record = self.payment_intents.get(payment_intent_id, user_id)
        if record is None:
            raise NotFoundError(f"Payment intent {payment_intent_id} not found")
        return record

    def _validate_stock(self, cart: Cart) -> List[Tuple[CartItem, Variant]]:
        """Pairs every cart item with its variant as currently stored."""
        found = self.products.get_many(i.product for i in cart.items)
        lines = []
        for item in cart.items:
            label = f"Product {item.product} with variant {describe_selector(item.variant)}"
            product = found.get(item.product)
            variant = product.variant_by_sku(item.sku) if product else None
            if variant is None:
                logger.warning("Checkout for user %s: %s no longer exists", cart.user, label)
                raise InsufficientStockError(f"{label} is no longer available")
            if variant.stock < item.quantity:
                logger.warning("Checkout for user %s: %s has %s left", cart.user, label, variant.stock)
                raise InsufficientStockError(
                    f"{label} is out of stock (requested {item.quantity}, available {variant.stock})"
                )
            lines.append((item, variant))
        return lines

    @staticmethod
    def _calculate_total(lines: List[Tuple[CartItem, Variant]]) -> float:
        total = 0.0
        for item, variant in lines:
            if not variant.price or variant.price <= 0:
                raise PriceResolutionError(
                    f"Price not found for product {item.product} variant {describe_selector(item.variant)}"
                )
            total += variant.price * item.quantity
        return round(total, 2)
