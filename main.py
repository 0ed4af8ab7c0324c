import logging
from contextlib import asynccontextmanager
from typing import Optional

import jwt
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import config
from cache import Cache, close_redis, get_redis
from cart import CartManager
from checkout import CheckoutInitiator
from database import close_db, get_db
from errors import ShopError
from logging_config import setup_logging
from payments import StripeGateway
from schemas import (
    Cart,
    CartItemRequest,
    CheckoutRequest,
    CheckoutSession,
    PaymentIntent,
    Product,
    ProductCreateRequest,
    Variant,
    VariantUpdateRequest,
    Wishlist,
    WishlistItemRequest,
)
from stores import CartStore, PaymentIntentStore, ProductStore, WishlistStore
from wishlist import WishlistManager

logger = logging.getLogger(__name__)


def check_jwt_secret() -> bool:
    if config.JWT_SECRET == config.DEV_JWT_SECRET:
        logger.warning("JWT_SECRET is not set; bearer tokens are verified with the development secret")
        return False
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.LOG_LEVEL)
    check_jwt_secret()
    yield
    close_redis()
    close_db()


app = FastAPI(title="Shop API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    if exc.public:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
    logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# ---------- Dependencies ----------

bearer = HTTPBearer(auto_error=False)


def get_current_user_id(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> str:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(credentials.credentials, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid authentication")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return str(user_id)


def get_cache() -> Cache:
    return Cache(get_redis())


def get_product_store() -> ProductStore:
    return ProductStore(get_db())


def get_cart_manager(products: ProductStore = Depends(get_product_store),
                     cache: Cache = Depends(get_cache)) -> CartManager:
    return CartManager(products, CartStore(get_db()), cache, config.CART_CACHE_EXPIRES_IN)


def get_wishlist_manager(products: ProductStore = Depends(get_product_store),
                         cache: Cache = Depends(get_cache),
                         carts: CartManager = Depends(get_cart_manager)) -> WishlistManager:
    return WishlistManager(products, WishlistStore(get_db()), cache, carts, config.WISHLIST_CACHE_EXPIRES_IN)


def get_gateway() -> StripeGateway:
    return StripeGateway(config.STRIPE_SECRET_KEY)


def get_checkout(carts: CartManager = Depends(get_cart_manager),
                 products: ProductStore = Depends(get_product_store),
                 gateway: StripeGateway = Depends(get_gateway)) -> CheckoutInitiator:
    return CheckoutInitiator(carts, products, PaymentIntentStore(get_db()), gateway, config.CHECKOUT_CURRENCY)


@app.get("/")
def read_root():
    return {"message": "Shop API ready"}


# Seed some demo products if none exist
SEED_PRODUCTS = [
    Product(
        title="Happy Duck Tee",
        description="Soft organic tee with a cheerful duck print.",
        category="T-Shirts",
        images=["https://images.unsplash.com/photo-1520975916090-3105956dac38?q=80&w=1200&auto=format&fit=crop"],
        tags=["duck", "cotton"],
        variants=[
            Variant(sku="DUCK-001-S", price=24.99, stock=20, attributes={"size": "S", "color": "green"}),
            Variant(sku="DUCK-001-M", price=24.99, stock=35, attributes={"size": "M", "color": "green"}),
            Variant(sku="DUCK-001-L", price=26.99, stock=15, attributes={"size": "L", "color": "green"}),
        ],
    ),
    Product(
        title="Canvas Tote",
        description="Heavy canvas tote bag for everyday use.",
        category="Accessories",
        images=["https://images.unsplash.com/photo-1511988617509-a57c8a288659?auto=format&fit=crop&w=1200&q=80"],
        variants=[
            Variant(sku="TOTE-NAT", price=19.0, stock=60, attributes={"color": "natural"}),
            Variant(sku="TOTE-BLK", price=21.0, stock=40, attributes={"color": "black"}),
        ],
    ),
    Product(
        title="Leather Oxfords",
        description="Hand-polished leather shoes.",
        category="Footwear",
        images=["https://images.unsplash.com/photo-1515542706656-8e6ef17a1521"],
        variants=[
            Variant(sku="OXF-42", price=98.0, stock=3, attributes={"size": "42"}),
            Variant(sku="OXF-43", price=98.0, stock=2, attributes={"size": "43"}),
        ],
    ),
]


def ensure_seed_products(products: ProductStore) -> None:
    seeded = products.seed(SEED_PRODUCTS)
    if seeded:
        logger.info("Seeded %s sample products", seeded)


# ---------- Products ----------

@app.get("/api/products")
def list_products(q: Optional[str] = None, category: Optional[str] = None, limit: int = 24,
                  products: ProductStore = Depends(get_product_store)):
    ensure_seed_products(products)
    return {"products": products.list(q=q, category=category, limit=limit)}


@app.get("/api/products/{product_id}", response_model=Product)
def get_product(product_id: str, products: ProductStore = Depends(get_product_store)):
    prod = products.get(product_id)
    if not prod:
        raise HTTPException(status_code=404, detail="Product not found")
    return prod


@app.post("/api/products", status_code=201)
def create_product(body: ProductCreateRequest, products: ProductStore = Depends(get_product_store)):
    return {"product_id": products.create(body)}


@app.patch("/api/products/{product_id}/variants/{sku}", response_model=Product)
def update_variant(product_id: str, sku: str, body: VariantUpdateRequest,
                   products: ProductStore = Depends(get_product_store)):
    prod = products.update_variant(product_id, sku, price=body.price, stock=body.stock)
    if not prod:
        raise HTTPException(status_code=404, detail=f"Variant {sku} of product {product_id} not found")
    return prod


# ---------- Cart ----------

@app.get("/api/cart", response_model=Cart)
def get_cart(user_id: str = Depends(get_current_user_id), carts: CartManager = Depends(get_cart_manager)):
    return carts.get_cart(user_id)


@app.post("/api/cart", response_model=Cart, status_code=201)
def add_to_cart(body: CartItemRequest, user_id: str = Depends(get_current_user_id),
                carts: CartManager = Depends(get_cart_manager)):
    return carts.add_to_cart(user_id, body)


@app.patch("/api/cart", response_model=Cart)
def update_cart_item(body: CartItemRequest, user_id: str = Depends(get_current_user_id),
                     carts: CartManager = Depends(get_cart_manager)):
    return carts.update_cart_item(user_id, body)


@app.delete("/api/cart/{item_id}", response_model=Cart)
def remove_from_cart(item_id: str, user_id: str = Depends(get_current_user_id),
                     carts: CartManager = Depends(get_cart_manager)):
    return carts.remove_from_cart(user_id, item_id)


@app.delete("/api/cart", response_model=Cart)
def clear_cart(user_id: str = Depends(get_current_user_id), carts: CartManager = Depends(get_cart_manager)):
    return carts.clear_cart(user_id)


# ---------- Wishlist ----------

@app.get("/api/wishlist", response_model=Wishlist)
def get_wishlist(user_id: str = Depends(get_current_user_id),
                 wishlists: WishlistManager = Depends(get_wishlist_manager)):
    return wishlists.get_wishlist(user_id)


@app.post("/api/wishlist", response_model=Wishlist)
def add_to_wishlist(body: WishlistItemRequest, user_id: str = Depends(get_current_user_id),
                    wishlists: WishlistManager = Depends(get_wishlist_manager)):
    return wishlists.add_to_wishlist(user_id, body)


@app.post("/api/wishlist/remove", response_model=Wishlist)
def remove_from_wishlist(body: WishlistItemRequest, user_id: str = Depends(get_current_user_id),
                         wishlists: WishlistManager = Depends(get_wishlist_manager)):
    return wishlists.remove_from_wishlist(user_id, body)


@app.delete("/api/wishlist", status_code=204)
def clear_wishlist(user_id: str = Depends(get_current_user_id),
                   wishlists: WishlistManager = Depends(get_wishlist_manager)):
    wishlists.clear_wishlist(user_id)
    return Response(status_code=204)


@app.post("/api/wishlist/move-to-cart", response_model=Cart)
def move_to_cart(body: WishlistItemRequest, user_id: str = Depends(get_current_user_id),
                 wishlists: WishlistManager = Depends(get_wishlist_manager)):
    return wishlists.move_to_cart(user_id, body)


# ---------- Checkout ----------

@app.post("/api/checkout", response_model=CheckoutSession)
def initiate_checkout(body: CheckoutRequest, user_id: str = Depends(get_current_user_id),
                      checkout: CheckoutInitiator = Depends(get_checkout)):
    return checkout.initiate_checkout(user_id, body)


@app.get("/api/checkout/{payment_intent_id}", response_model=PaymentIntent)
def get_payment_intent(payment_intent_id: str, user_id: str = Depends(get_current_user_id),
                       checkout: CheckoutInitiator = Depends(get_checkout)):
    return checkout.get_payment_intent(user_id, payment_intent_id)


@app.get("/test")
def test_connections():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": config.DATABASE_NAME,
        "cache": "❌ Not Available",
        "collections": [],
    }
    try:
        db = get_db()
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    try:
        get_redis().ping()
        response["cache"] = "✅ Connected"
    except Exception as e:
        response["cache"] = f"❌ Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    setup_logging(config.LOG_LEVEL)
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
