"""
Cart Manager.

The store is the system of record; the cache holds the populated cart under
`cart:{user}` and is overwritten in full after every successful store write
(write-through). Stock checks here are advisory: nothing is reserved, and
checkout re-validates against the current catalog.
"""

import logging
from typing import Tuple

from cache import Cache, cart_key
from database import new_id
from errors import InsufficientStockError, NotFoundError
from schemas import Cart, CartItem, CartItemRequest, Product, Variant, describe_selector

logger = logging.getLogger(__name__)


def resolve(products, product_id: str, selector) -> Tuple[Product, Variant]:
    """Looks up the product and the single variant the selector points at."""
    product = products.get(product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    variant = product.resolve_variant(selector)
    if variant is None:
        raise NotFoundError(f"Product {product_id} has no variant matching {describe_selector(selector)}")
    return product, variant


class CartManager:
    def __init__(self, products, carts, cache: Cache, expires_in: int = 3600):
        self.products = products
        self.carts = carts
        self.cache = cache
        self.expires_in = expires_in

    def get_cart(self, user_id: str) -> Cart:
        key = cart_key(user_id)
        cached = self.cache.get_value(key)
        if isinstance(cached, dict):
            logger.info("Cache hit for %s", key)
            return Cart.model_validate(cached)

        logger.info("Cache miss for %s, fetching from DB", key)
        cart = self.carts.find_by_user(user_id) or Cart(user=user_id, items=[])
        return self._publish(cart)

    def add_to_cart(self, user_id: str, item: CartItemRequest) -> Cart:
        product, variant = self._checked_variant(user_id, item)
        row = CartItem(
            id=new_id(),
            product=item.product,
            sku=variant.sku,
            variant=variant.options(),
            quantity=item.quantity,
            price=variant.price or 0.0,
            images=variant.images or product.images,
        )
        cart = self.carts.add_item(user_id, row)
        logger.info("Added %s x %s (%s) to cart of user %s", item.quantity, item.product, variant.sku, user_id)
        return self._publish(cart)

    def update_cart_item(self, user_id: str, item: CartItemRequest) -> Cart:
        _, variant = self._checked_variant(user_id, item)
        if self.carts.find_by_user(user_id) is None:
            logger.warning("Cart not found for user %s", user_id)
            raise NotFoundError("Cart not found")
        cart = self.carts.set_item_quantity(user_id, item.product, variant.sku, item.quantity)
        if cart is None:
            logger.warning("Item %s (%s) not found in cart for user %s", item.product, variant.sku, user_id)
            raise NotFoundError(
                f"Product {item.product} with variant {describe_selector(item.variant)} not found in cart"
            )
        return self._publish(cart)

    def remove_from_cart(self, user_id: str, item_id: str) -> Cart:
        cart = self.carts.remove_item(user_id, item_id)
        if cart is None:
            if self.carts.find_by_user(user_id) is None:
                logger.warning("Cart not found for user %s", user_id)
                raise NotFoundError("Cart not found")
            logger.warning("Item with ID %s not found in cart for user %s", item_id, user_id)
            raise NotFoundError(f"Item {item_id} not found in cart")
        return self._publish(cart)

    def clear_cart(self, user_id: str) -> Cart:
        cart = self.carts.clear(user_id) or Cart(user=user_id, items=[])
        return self._publish(cart)

    def _checked_variant(self, user_id: str, item: CartItemRequest) -> Tuple[Product, Variant]:
        product, variant = resolve(self.products, item.product, item.variant)
        if variant.stock < item.quantity:
            logger.warning(
                "User %s asked for %s of %s (%s), %s in stock",
                user_id, item.quantity, item.product, variant.sku, variant.stock,
            )
            raise InsufficientStockError(
                f"Product {item.product} with variant {describe_selector(item.variant)} is out of stock "
                f"(requested {item.quantity}, available {variant.stock})"
            )
        return product, variant

    def _publish(self, cart: Cart) -> Cart:
        """Populates display data and overwrites the cache entry."""
        if cart.items:
            found = self.products.get_many(i.product for i in cart.items)
            for i in cart.items:
                product = found.get(i.product)
                i.product_title = product.title if product else None
        self.cache.set_value(cart_key(cart.user), cart, self.expires_in)
        return cart
