import os

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "shop")

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
CHECKOUT_CURRENCY = os.getenv("CHECKOUT_CURRENCY", "usd")

CART_CACHE_EXPIRES_IN = int(os.getenv("CART_CACHE_EXPIRES_IN", 3600))
WISHLIST_CACHE_EXPIRES_IN = int(os.getenv("WISHLIST_CACHE_EXPIRES_IN", 3600))

# Local development only; set JWT_SECRET in every deployed environment.
DEV_JWT_SECRET = "dev-only-jwt-secret-change-me-before-deploying"
JWT_SECRET = os.getenv("JWT_SECRET", DEV_JWT_SECRET)
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
