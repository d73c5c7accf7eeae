# storefront/utils/retry.py
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
import requests
import redis

from storefront.utils.settings import DEPENDENCY_RETRY_ATTEMPTS


def _transient(errors, base: float, ceiling: float):
    return retry(
        reraise=True,
        stop=stop_after_attempt(DEPENDENCY_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=base, min=base, max=ceiling),
        retry=retry_if_exception_type(errors),
    )


def http_retry():
    # 4xx/5xx responses are not retried here, only the transport
    return _transient((requests.ConnectionError, requests.Timeout), 0.3, 3)


def redis_retry():
    return _transient(redis.RedisError, 0.2, 2)
