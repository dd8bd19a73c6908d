"""Runtime configuration loaded from environment variables."""

import os
import logging
from decimal import Decimal
from functools import lru_cache
from typing import Dict, Optional

from pydantic import BaseModel, Field

from .signatures import SignatureEncoding, SignatureProfile

logger = logging.getLogger(__name__)

PAGARME_SOURCE = "pagarme"
SHOPIFY_SOURCE = "shopify"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Application settings.

    Every field maps to an environment variable of the same name in upper case.
    Secrets are optional here: a missing secret makes the matching webhook
    reject every request instead of failing at startup.
    """
    pagarme_webhook_secret: Optional[str] = None
    pagarme_signature_header: str = "x-pagar-me-signature"
    shopify_webhook_secret: Optional[str] = None
    shopify_signature_header: str = "x-shopify-hmac-sha256"
    shopify_topic_header: str = "x-shopify-topic"

    match_amount_tolerance: Decimal = Field(default=Decimal("0.05"), ge=0)
    event_store_capacity: int = Field(default=100, gt=0)
    event_store_path: str = "./data/disputes.json"
    order_lookup_timeout: float = Field(default=10.0, gt=0)

    shopify_store_domain: Optional[str] = None
    shopify_access_token: Optional[str] = None
    shopify_api_version: str = "2024-01"

    pagarme_api_key: Optional[str] = None
    pagarme_base_url: str = "https://api.pagar.me/core/v5"

    auto_reconcile: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        defaults = cls()
        return cls(
            pagarme_webhook_secret=os.getenv("PAGARME_WEBHOOK_SECRET") or None,
            pagarme_signature_header=os.getenv(
                "PAGARME_SIGNATURE_HEADER", defaults.pagarme_signature_header
            ),
            shopify_webhook_secret=os.getenv("SHOPIFY_WEBHOOK_SECRET") or None,
            shopify_signature_header=os.getenv(
                "SHOPIFY_SIGNATURE_HEADER", defaults.shopify_signature_header
            ),
            shopify_topic_header=os.getenv(
                "SHOPIFY_TOPIC_HEADER", defaults.shopify_topic_header
            ),
            match_amount_tolerance=Decimal(
                os.getenv("MATCH_AMOUNT_TOLERANCE", str(defaults.match_amount_tolerance))
            ),
            event_store_capacity=int(
                os.getenv("EVENT_STORE_CAPACITY", str(defaults.event_store_capacity))
            ),
            event_store_path=os.getenv("EVENT_STORE_PATH", defaults.event_store_path),
            order_lookup_timeout=float(
                os.getenv("ORDER_LOOKUP_TIMEOUT", str(defaults.order_lookup_timeout))
            ),
            shopify_store_domain=os.getenv("SHOPIFY_STORE_DOMAIN") or None,
            shopify_access_token=os.getenv("SHOPIFY_ACCESS_TOKEN") or None,
            shopify_api_version=os.getenv("SHOPIFY_API_VERSION", defaults.shopify_api_version),
            pagarme_api_key=os.getenv("PAGARME_API_KEY") or None,
            pagarme_base_url=os.getenv("PAGARME_BASE_URL", defaults.pagarme_base_url),
            auto_reconcile=_env_bool("AUTO_RECONCILE", defaults.auto_reconcile),
        )

    @property
    def shopify_configured(self) -> bool:
        return bool(self.shopify_store_domain and self.shopify_access_token)

    def signature_profiles(self) -> Dict[str, SignatureProfile]:
        """Signature verification table keyed by webhook source."""
        return {
            PAGARME_SOURCE: SignatureProfile(
                source=PAGARME_SOURCE,
                header=self.pagarme_signature_header,
                encoding=SignatureEncoding.HEX,
                secret=self.pagarme_webhook_secret,
            ),
            SHOPIFY_SOURCE: SignatureProfile(
                source=SHOPIFY_SOURCE,
                header=self.shopify_signature_header,
                encoding=SignatureEncoding.BASE64,
                secret=self.shopify_webhook_secret,
            ),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment."""
    settings = Settings.from_env()
    for profile in settings.signature_profiles().values():
        if not profile.secret:
            logger.warning(
                f"Webhook secret for {profile.source} is not configured; "
                "its webhook will reject every request"
            )
    return settings
