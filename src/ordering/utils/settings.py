"""Runtime settings for pricing, payments and the gateway client.

Values come from environment variables and are read once per process.
Tests that change the environment call ``get_settings.cache_clear()``.
"""

import os
from dataclasses import dataclass
from functools import lru_cache


def _float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    currency: str = "VND"
    tax_rate: float = 0.0
    shipping_fee: float = 0.0
    free_shipping_threshold: float | None = None
    payment_gateway: str = "fake"
    stripe_api_key: str | None = None
    gateway_timeout_seconds: float = 10.0
    gateway_retry_attempts: int = 3
    gateway_backoff_initial: float = 0.2
    gateway_backoff_max: float = 2.0
    payment_intent_ttl_minutes: int = 30

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("PROTEAN_ENV", "development").lower(),
            currency=os.getenv("STOREFRONT_CURRENCY", "VND").upper(),
            tax_rate=_float("STOREFRONT_TAX_RATE", 0.0),
            shipping_fee=_float("STOREFRONT_SHIPPING_FEE", 0.0),
            free_shipping_threshold=_float("STOREFRONT_FREE_SHIPPING_THRESHOLD", None),
            payment_gateway=os.getenv("PAYMENT_GATEWAY", "fake").lower(),
            stripe_api_key=os.getenv("STRIPE_API_KEY") or None,
            gateway_timeout_seconds=_float("GATEWAY_TIMEOUT_SECONDS", 10.0),
            gateway_retry_attempts=max(1, _int("GATEWAY_RETRY_ATTEMPTS", 3)),
            gateway_backoff_initial=_float("GATEWAY_BACKOFF_INITIAL", 0.2),
            gateway_backoff_max=_float("GATEWAY_BACKOFF_MAX", 2.0),
            payment_intent_ttl_minutes=_int("PAYMENT_INTENT_TTL_MINUTES", 30),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
