"""Per-user namespaced key-value cache backed by Redis.

Profiles and order snapshots are mirrored here for fast display; the
database stays the source of truth. Cache reads and writes never raise:
a Redis outage degrades to "nothing cached". Checkout state is the
exception, its writes must succeed or the flow cannot advance.
"""
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

import redis

from core.config import settings
from services.errors import StateStoreError

logger = logging.getLogger(__name__)

redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

PROFILE_PREFIX = "tsr-fashion-profile"
ORDERS_PREFIX = "tsr-fashion-orders"
CHECKOUT_PREFIX = "tsr-checkout"
CHECKOUT_LOCK_PREFIX = "tsr-checkout-lock"

GUEST_OWNER = "guest"
CHECKOUT_TTL_SECONDS = 60 * 60 * 24
CHECKOUT_LOCK_TTL_SECONDS = 30
MAX_CACHED_ORDERS = 20


def build_key(prefix: str, owner: Any) -> str:
    return f"{prefix}:{owner}"


def _read_json(key: str) -> Optional[Any]:
    try:
        raw = redis_client.get(key)
    except redis.RedisError as e:
        logger.warning("Cache read failed for %s: %s", key, e)
        return None
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding corrupted cache entry %s", key)
        _delete(key)
        return None


def _write_json(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    try:
        payload = json.dumps(value, default=str)
        if ttl:
            redis_client.setex(key, ttl, payload)
        else:
            redis_client.set(key, payload)
        return True
    except redis.RedisError as e:
        logger.warning("Cache write failed for %s: %s", key, e)
        return False


def _delete(key: str) -> None:
    try:
        redis_client.delete(key)
    except redis.RedisError as e:
        logger.warning("Cache delete failed for %s: %s", key, e)


# Profiles

def get_cached_profile(user_id: int) -> Optional[Dict[str, Any]]:
    stored = _read_json(build_key(PROFILE_PREFIX, user_id))
    if not isinstance(stored, dict) or not stored.get("data"):
        return None
    return stored


def cache_profile(user_id: int, data: Dict[str, Any], updated_at: str) -> None:
    _write_json(build_key(PROFILE_PREFIX, user_id), {"data": data, "updated_at": updated_at})


def clear_cached_profile(user_id: int) -> None:
    _delete(build_key(PROFILE_PREFIX, user_id))


# Orders

def get_cached_orders(owner: Any) -> List[Dict[str, Any]]:
    stored = _read_json(build_key(ORDERS_PREFIX, owner))
    return stored if isinstance(stored, list) else []


def cache_order(owner: Any, order: Dict[str, Any]) -> None:
    """Append an order snapshot, replacing an older snapshot with the same number."""
    number = order["order_number"].lower()
    orders = [o for o in get_cached_orders(owner) if o.get("order_number", "").lower() != number]
    orders.append(order)
    _write_json(build_key(ORDERS_PREFIX, owner), orders[-MAX_CACHED_ORDERS:])


# Checkout state

def load_checkout_state(cart_token: str) -> Optional[Dict[str, Any]]:
    return _read_json(build_key(CHECKOUT_PREFIX, cart_token))


def save_checkout_state(cart_token: str, state: Dict[str, Any]) -> None:
    if not _write_json(build_key(CHECKOUT_PREFIX, cart_token), state, ttl=CHECKOUT_TTL_SECONDS):
        raise StateStoreError()


def clear_checkout_state(cart_token: str) -> None:
    _delete(build_key(CHECKOUT_PREFIX, cart_token))


def acquire_checkout_lock(cart_token: str) -> Optional[str]:
    """Mark a confirmation as outstanding.

    Returns the holder token needed to release the lock, or None when
    another confirmation already holds it.
    """
    holder = uuid.uuid4().hex
    try:
        acquired = redis_client.set(
            build_key(CHECKOUT_LOCK_PREFIX, cart_token), holder, nx=True, ex=CHECKOUT_LOCK_TTL_SECONDS
        )
    except redis.RedisError as e:
        raise StateStoreError() from e
    return holder if acquired else None


def release_checkout_lock(cart_token: str, holder: str) -> None:
    """Delete the lock only while it still belongs to `holder`."""
    key = build_key(CHECKOUT_LOCK_PREFIX, cart_token)
    try:
        with redis_client.pipeline() as pipe:
            pipe.watch(key)
            if pipe.get(key) != holder:
                pipe.unwatch()
                logger.info("Checkout lock for %s expired before release", cart_token)
                return
            pipe.multi()
            pipe.delete(key)
            pipe.execute()
    except redis.WatchError:
        logger.info("Checkout lock for %s changed hands during release", cart_token)
    except redis.RedisError as e:
        logger.warning("Checkout lock release failed for %s: %s", cart_token, e)
