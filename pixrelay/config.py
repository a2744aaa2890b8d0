import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv

DEFAULT_GATEWAY_URL = "https://api.realtechdev.com.br/v1/transactions"
DEFAULT_ATTRIBUTION_URL = "https://api.utmify.com.br/api-credentials/orders"


class ConfigError(Exception):
    """Raised when the service cannot start with the given environment."""


@dataclass(frozen=True)
class Settings:
    gateway_api_key: str
    gateway_url: str = DEFAULT_GATEWAY_URL
    attribution_token: Optional[str] = None
    attribution_url: str = DEFAULT_ATTRIBUTION_URL
    attribution_platform: str = "FreeFireCheckout"
    port: int = 3000
    allowed_origin: str = "https://freefirereward.site"
    log_level: str = "INFO"
    transaction_lifetime: timedelta = timedelta(minutes=35)
    # Lazy expiry on status reads; never longer than transaction_lifetime.
    status_expiry: Optional[timedelta] = None
    cleanup_interval: timedelta = timedelta(minutes=5)

    def __post_init__(self):
        if not self.gateway_api_key:
            raise ConfigError("BUCK_PAY_API_KEY is not configured")
        if self.status_expiry is None:
            object.__setattr__(self, "status_expiry", self.transaction_lifetime)
        if self.status_expiry > self.transaction_lifetime:
            raise ConfigError(
                "STATUS_EXPIRY_MINUTES cannot exceed TRANSACTION_LIFETIME_MINUTES"
            )

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        lifetime = timedelta(minutes=_float_env("TRANSACTION_LIFETIME_MINUTES", 35))
        status_expiry = _float_env("STATUS_EXPIRY_MINUTES", None)

        return cls(
            gateway_api_key=os.getenv("BUCK_PAY_API_KEY", ""),
            gateway_url=os.getenv("BUCK_PAY_URL") or DEFAULT_GATEWAY_URL,
            attribution_token=os.getenv("UTMIFY_TOKEN") or None,
            attribution_url=os.getenv("UTMIFY_URL") or DEFAULT_ATTRIBUTION_URL,
            attribution_platform=os.getenv("ATTRIBUTION_PLATFORM", "FreeFireCheckout"),
            port=_int_env("PORT", 3000),
            allowed_origin=os.getenv("ALLOWED_ORIGIN", "https://freefirereward.site"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            transaction_lifetime=lifetime,
            status_expiry=timedelta(minutes=status_expiry) if status_expiry is not None else None,
            cleanup_interval=timedelta(seconds=_float_env("CLEANUP_INTERVAL_SECONDS", 300)),
        )


def _float_env(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
