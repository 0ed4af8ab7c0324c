import json
import logging
from typing import Any, Optional

import redis
from pydantic import BaseModel

import config
from errors import CacheUnavailable

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Returns the process-wide redis client, connecting and pinging on first use."""
    global _client
    if _client is None:
        client = redis.Redis.from_url(config.REDIS_URL, decode_responses=True)
        try:
            client.ping()
        except redis.RedisError as e:
            logger.error("Error connecting to Redis: %s", e)
            raise CacheUnavailable("Failed to connect to Redis") from e
        _client = client
        logger.info("Redis client initialized")
    return _client


def close_redis() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("Redis client closed")


def cart_key(user_id: str) -> str:
    return f"cart:{user_id}"


def wishlist_key(user_id: str) -> str:
    return f"wishlist:user:{user_id}"


class Cache:
    """Expiring key-value cache; values are raw strings or JSON documents."""

    def __init__(self, client):
        self.client = client

    def get_value(self, key: str) -> Any:
        try:
            value = self.client.get(key)
        except redis.RedisError as e:
            logger.error("Error retrieving %s from Redis: %s", key, e)
            raise CacheUnavailable(f"Failed to retrieve {key} from Redis") from e
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError:
            return value

    def set_value(self, key: str, value: Any, expires_in: Optional[int] = None) -> None:
        if isinstance(value, str):
            data = value
        elif isinstance(value, BaseModel):
            data = value.model_dump_json()
        else:
            data = json.dumps(value, default=str)
        try:
            if expires_in:
                self.client.setex(key, expires_in, data)
            else:
                self.client.set(key, data)
        except redis.RedisError as e:
            logger.error("Error storing %s in Redis: %s", key, e)
            raise CacheUnavailable(f"Failed to store {key} in Redis") from e
        logger.info("Stored in Redis: %s", key)

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.error("Error deleting %s from Redis: %s", key, e)
            raise CacheUnavailable(f"Failed to delete {key} from Redis") from e
        logger.info("Deleted from Redis: %s", key)
