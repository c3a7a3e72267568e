# storefront/utils/retry.py
import logging

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log
import requests
import redis

from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _retry_on(exc_type, attempts: int, multiplier: float, max_wait: float):
    # po wyczerpaniu prob leci oryginalny wyjatek, nie RetryError
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=multiplier, min=multiplier, max=max_wait),
        retry=retry_if_exception_type(exc_type),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


def http_retry(attempts: int = 3):
    """Webhook powiadomien."""
    return _retry_on(requests.RequestException, attempts, 0.3, 3)


def redis_retry(attempts: int = 3):
    """Lock checkoutu."""
    return _retry_on(redis.RedisError, attempts, 0.2, 2)
