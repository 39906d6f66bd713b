# cafe/utils/retry.py
import logging

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log
import requests
import redis

from cafe.utils.logging import get_logger

logger = get_logger(__name__)

READ_ATTEMPTS = 3


def _backoff(exc_type, first_wait: float, max_wait: float):
    return retry(
        reraise=True,
        stop=stop_after_attempt(READ_ATTEMPTS),
        wait=wait_exponential(multiplier=first_wait, min=first_wait, max=max_wait),
        retry=retry_if_exception_type(exc_type),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


#tylko odczyty: GET do data store, katalogu i procesora (retrieve intent)
#create/confirm intentu i inserty nigdy - tam chroni Idempotency-Key i kolejka rekonsyliacji
def http_retry():
    return _backoff(requests.RequestException, first_wait=0.3, max_wait=3)


#SET NX / compare-and-delete locka checkoutu
def redis_retry():
    return _backoff(redis.RedisError, first_wait=0.2, max_wait=2)
