import logging

from cache import Cache, wishlist_key
from cart import CartManager, resolve
from database import new_id
from errors import NotFoundError
from schemas import Cart, CartItemRequest, Wishlist, WishlistItem, WishlistItemRequest, describe_selector

logger = logging.getLogger(__name__)


class WishlistManager:
    """Per-user wishlist with the same read-through/write-through caching as the cart."""

    def __init__(self, products, wishlists, cache: Cache, carts: CartManager, expires_in: int = 3600):
        self.products = products
        self.wishlists = wishlists
        self.cache = cache
        self.carts = carts
        self.expires_in = expires_in

    def get_wishlist(self, user_id: str) -> Wishlist:
        key = wishlist_key(user_id)
        cached = self.cache.get_value(key)
        if isinstance(cached, dict):
            logger.info("Cache hit for %s", key)
            return Wishlist.model_validate(cached)
        logger.info("Cache miss for %s, fetching from DB", key)
        wishlist = self.wishlists.find_by_user(user_id) or Wishlist(user=user_id, items=[])
        return self._publish(wishlist)

    def add_to_wishlist(self, user_id: str, item: WishlistItemRequest) -> Wishlist:
        product, variant = resolve(self.products, item.product, item.variant)
        row = WishlistItem(
            id=new_id(),
            product=item.product,
            sku=variant.sku,
            variant=variant.options(),
            price=variant.price or 0.0,
            images=variant.images or product.images,
        )
        return self._publish(self.wishlists.add_item(user_id, row))

    def remove_from_wishlist(self, user_id: str, item: WishlistItemRequest) -> Wishlist:
        _, variant = resolve(self.products, item.product, item.variant)
        wishlist = self.wishlists.remove_item(user_id, item.product, variant.sku)
        if wishlist is None:
            raise NotFoundError(
                f"Product {item.product} with variant {describe_selector(item.variant)} not found in wishlist"
            )
        return self._publish(wishlist)

    def clear_wishlist(self, user_id: str) -> None:
        self.wishlists.clear(user_id)
        self.cache.delete(wishlist_key(user_id))

    def move_to_cart(self, user_id: str, item: WishlistItemRequest, quantity: int = 1) -> Cart:
        _, variant = resolve(self.products, item.product, item.variant)
        wishlist = self.wishlists.find_by_user(user_id)
        if wishlist is None or not any(i.product == item.product and i.sku == variant.sku for i in wishlist.items):
            raise NotFoundError(
                f"Product {item.product} with variant {describe_selector(item.variant)} not found in wishlist"
            )
        cart = self.carts.add_to_cart(
            user_id, CartItemRequest(product=item.product, variant=item.variant, quantity=quantity)
        )
        self.remove_from_wishlist(user_id, item)
        return cart

    def _publish(self, wishlist: Wishlist) -> Wishlist:
        if wishlist.items:
            found = self.products.get_many(i.product for i in wishlist.items)
            for i in wishlist.items:
                product = found.get(i.product)
                i.product_title = product.title if product else None
        self.cache.set_value(wishlist_key(wishlist.user), wishlist, self.expires_in)
        return wishlist
