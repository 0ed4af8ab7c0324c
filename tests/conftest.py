import copy
from typing import Dict, List, Optional

import jwt
import pytest
import redis
from fastapi.testclient import TestClient

import config
import main
from cache import Cache
from cart import CartManager
from checkout import CheckoutInitiator
from database import new_id
from payments import GatewayIntent
from schemas import Cart, CartItem, PaymentIntent, Product, Variant, Wishlist, WishlistItem
from wishlist import WishlistManager


class FakeRedis:
    """Dict-backed stand-in for the redis client calls the cache makes."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis is down")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.data.get(key)

    def set(self, key, value):
        self._check()
        self.data[key] = value
        self.ttls.pop(key, None)

    def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self._check()
        self.ttls.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0

    def expire_all(self):
        self.data.clear()
        self.ttls.clear()


class InMemoryProductStore:
    def __init__(self):
        self.products: Dict[str, Product] = {}

    def add(self, product: Product) -> Product:
        product = product.model_copy(update={"id": product.id or new_id()})
        self.products[product.id] = product
        return product

    def get(self, product_id: str) -> Optional[Product]:
        product = self.products.get(product_id)
        return product.model_copy(deep=True) if product else None

    def get_many(self, product_ids) -> Dict[str, Product]:
        return {p: self.products[p].model_copy(deep=True) for p in set(product_ids) if p in self.products}

    def list(self, q=None, category=None, limit=24):
        found = [p for p in self.products.values()
                 if (not q or q.lower() in p.title.lower()) and (not category or p.category == category)]
        return found[:limit]

    def seed(self, products):
        if self.products:
            return 0
        for p in products:
            self.add(p)
        return len(products)

    def set_variant(self, product_id: str, sku: str, **changes):
        product = self.products[product_id]
        variants = [v.model_copy(update=changes) if v.sku == sku else v for v in product.variants]
        self.products[product_id] = product.model_copy(update={"variants": variants})

    def drop_variant(self, product_id: str, sku: str):
        product = self.products[product_id]
        variants = [v for v in product.variants if v.sku != sku]
        self.products[product_id] = product.model_copy(update={"variants": variants})


class InMemoryCartStore:
    """Mirrors CartStore's atomic per-document semantics."""

    def __init__(self):
        self.docs: Dict[str, Cart] = {}
        self.writes = 0

    def _out(self, user_id):
        return self.docs[user_id].model_copy(deep=True)

    def find_by_user(self, user_id):
        return self._out(user_id) if user_id in self.docs else None

    def add_item(self, user_id, item: CartItem):
        self.writes += 1
        cart = self.docs.setdefault(user_id, Cart(id=new_id(), user=user_id, items=[]))
        for row in cart.items:
            if row.product == item.product and row.sku == item.sku:
                row.quantity += item.quantity
                return self._out(user_id)
        cart.items.append(item.model_copy(update={"product_title": None}))
        return self._out(user_id)

    def set_item_quantity(self, user_id, product, sku, quantity):
        cart = self.docs.get(user_id)
        if cart is None:
            return None
        for row in cart.items:
            if row.product == product and row.sku == sku:
                self.writes += 1
                row.quantity = quantity
                return self._out(user_id)
        return None

    def remove_item(self, user_id, item_id):
        cart = self.docs.get(user_id)
        if cart is None or not any(r.id == item_id for r in cart.items):
            return None
        self.writes += 1
        cart.items = [r for r in cart.items if r.id != item_id]
        return self._out(user_id)

    def clear(self, user_id):
        if user_id not in self.docs:
            return None
        self.writes += 1
        self.docs[user_id].items = []
        return self._out(user_id)


class InMemoryWishlistStore:
    def __init__(self):
        self.docs: Dict[str, Wishlist] = {}

    def _out(self, user_id):
        return self.docs[user_id].model_copy(deep=True)

    def find_by_user(self, user_id):
        return self._out(user_id) if user_id in self.docs else None

    def add_item(self, user_id, item: WishlistItem):
        wishlist = self.docs.setdefault(user_id, Wishlist(id=new_id(), user=user_id, items=[]))
        if not any(r.product == item.product and r.sku == item.sku for r in wishlist.items):
            wishlist.items.append(item)
        return self._out(user_id)

    def remove_item(self, user_id, product, sku):
        wishlist = self.docs.get(user_id)
        if wishlist is None or not any(r.product == product and r.sku == sku for r in wishlist.items):
            return None
        wishlist.items = [r for r in wishlist.items if not (r.product == product and r.sku == sku)]
        return self._out(user_id)

    def clear(self, user_id):
        if user_id in self.docs:
            self.docs[user_id].items = []


class InMemoryPaymentIntentStore:
    def __init__(self):
        self.records: Dict[str, PaymentIntent] = {}

    def create(self, intent: PaymentIntent) -> str:
        intent_id = new_id()
        self.records[intent_id] = intent.model_copy(update={"id": intent_id}, deep=True)
        return intent_id

    def get(self, intent_id, user_id):
        record = self.records.get(intent_id)
        if record is None or record.user_id != user_id:
            return None
        return copy.deepcopy(record)


class FakeGateway:
    def __init__(self, client_secret: Optional[str] = "pi_test_secret"):
        self.client_secret = client_secret
        self.calls: List[dict] = []

    def create_payment_intent(self, amount, currency, metadata):
        self.calls.append({"amount": amount, "currency": currency, "metadata": metadata})
        intent_id = f"pi_test_{len(self.calls)}"
        raw = {"id": intent_id, "amount": amount, "currency": currency, "metadata": metadata}
        return GatewayIntent(id=intent_id, client_secret=self.client_secret, raw=raw)


USER = "user-1"


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def cache(redis_client):
    return Cache(redis_client)


@pytest.fixture
def products():
    return InMemoryProductStore()


@pytest.fixture
def tee(products):
    return products.add(Product(
        title="Duck Tee",
        category="T-Shirts",
        images=["https://img.example/tee.jpg"],
        variants=[
            Variant(sku="TEE-S-GRN", price=20.0, stock=5, attributes={"size": "S", "color": "green"},
                    images=["https://img.example/tee-s.jpg"]),
            Variant(sku="TEE-M-GRN", price=22.5, stock=1, attributes={"size": "M", "color": "green"}),
        ],
    ))


@pytest.fixture
def tote(products):
    return products.add(Product(
        title="Canvas Tote",
        category="Accessories",
        images=["https://img.example/tote.jpg"],
        variants=[Variant(sku="TOTE-NAT", price=19.99, stock=10, attributes={"color": "natural"})],
    ))


@pytest.fixture
def cart_store():
    return InMemoryCartStore()


@pytest.fixture
def wishlist_store():
    return InMemoryWishlistStore()


@pytest.fixture
def payment_intents():
    return InMemoryPaymentIntentStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def cart_manager(products, cart_store, cache):
    return CartManager(products, cart_store, cache, expires_in=3600)


@pytest.fixture
def wishlist_manager(products, wishlist_store, cache, cart_manager):
    return WishlistManager(products, wishlist_store, cache, cart_manager, expires_in=3600)


@pytest.fixture
def checkout(cart_manager, products, payment_intents, gateway):
    return CheckoutInitiator(cart_manager, products, payment_intents, gateway, currency="usd")


@pytest.fixture
def client(products, cart_manager, wishlist_manager, checkout):
    main.app.dependency_overrides[main.get_product_store] = lambda: products
    main.app.dependency_overrides[main.get_cart_manager] = lambda: cart_manager
    main.app.dependency_overrides[main.get_wishlist_manager] = lambda: wishlist_manager
    main.app.dependency_overrides[main.get_checkout] = lambda: checkout
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def token_for(user_id: str) -> str:
    return jwt.encode({"sub": user_id}, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {token_for(USER)}"}
