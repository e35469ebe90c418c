"""Shared-secret check for the scheduler trigger."""

import hashlib
import hmac
import logging
import time

from recurring_scheduler.config import settings
from recurring_scheduler.services.secret_manager import get_secret

logger = logging.getLogger(__name__)

_cached_cron_secret: str | None = None
_cached_at = 0.0


def reset_cron_secret_cache() -> None:
    global _cached_cron_secret, _cached_at
    _cached_cron_secret = None
    _cached_at = 0.0


def _cached_secret_is_fresh() -> bool:
    if not _cached_cron_secret:
        return False
    return time.monotonic() - _cached_at < settings.cron_secret_cache_seconds


def get_cron_secret() -> str | None:
    """
    The configured cron secret.

    An environment value wins. Otherwise the Secret Manager value is used and
    re-read once ``cron_secret_cache_seconds`` have passed, so a rotated
    secret takes effect without a restart.
    """
    global _cached_cron_secret, _cached_at
    if settings.cron_secret:
        return settings.cron_secret
    if _cached_secret_is_fresh():
        return _cached_cron_secret

    if settings.cron_secret_name:
        secret = get_secret(settings.cron_secret_name)
        if secret:
            _cached_cron_secret = secret
            _cached_at = time.monotonic()
            return secret
        if _cached_cron_secret:
            logger.warning("Could not refresh the cron secret; keeping the cached value.")
            return _cached_cron_secret

    logger.warning("Cron secret not configured; rejecting scheduler triggers.")
    return None


def extract_presented_secret(
    x_cron_secret: str | None, authorization: str | None
) -> str | None:
    """Prefer ``X-Cron-Secret``; otherwise take the Authorization value, minus any Bearer prefix."""
    value = x_cron_secret or authorization
    if not value:
        return None
    value = value.strip()
    if value.lower().startswith("bearer "):
        value = value[7:].strip()
    return value or None


def _digest(value: str) -> bytes:
    return hashlib.sha256(value.encode("utf-8")).digest()


def secrets_match(presented: str, expected: str) -> bool:
    # Digests have equal length, so the comparison time does not leak the secret's length.
    return hmac.compare_digest(_digest(presented), _digest(expected))


def is_authorized(presented: str | None) -> bool:
    expected = get_cron_secret()
    if not expected or not presented:
        return False
    return secrets_match(presented, expected)
