# cafe/services/lock_service.py
import uuid
from contextlib import contextmanager

import redis

from cafe.domain.errors import CheckoutInProgress
from cafe.utils.retry import redis_retry
from cafe.utils.settings import REDIS_URL, CHECKOUT_LOCK_TTL_SECONDS
from cafe.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje skrypt lua atomowo, nikt nie wcisnie sie miedzy GET a DEL

class LockService:
    """
    -blokada jednej proby checkoutu (po idempotency key)
    -podwojny submit klienta i sweeper nie zapisza tego samego zamowienia rownolegle
    -token wlasciciela, zeby nie zwolnic cudzego locka
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(idempotency_key: str) -> str:
        return f"checkout:{idempotency_key}:lock"

    @redis_retry()
    def acquire(self, idempotency_key: str, owner: str, ttl: int = CHECKOUT_LOCK_TTL_SECONDS) -> bool:
        key = self._key(idempotency_key)
        logger.info(f"Acquire lock {key}")
        #SET checkout:abc:lock "<owner>" NX EX 120
        return bool(self.redis.set(name=key, value=owner, nx=True, ex=ttl))

    @redis_retry()
    def release(self, idempotency_key: str, owner: str) -> bool:
        key = self._key(idempotency_key)
        logger.info(f"Release lock {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, owner)
        return bool(res)

    @contextmanager
    def hold(self, idempotency_key: str, ttl: int = CHECKOUT_LOCK_TTL_SECONDS):
        owner = uuid.uuid4().hex
        if not self.acquire(idempotency_key, owner, ttl):
            raise CheckoutInProgress("This checkout is already being processed")
        try:
            yield owner
        finally:
            self.release(idempotency_key, owner)
