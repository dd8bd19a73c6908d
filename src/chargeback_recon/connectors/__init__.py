"""Order lookup and payment gateway collaborators."""

from typing import Optional

from ..config import Settings
from .base import (
    OrderLookupClient,
    DisputeGateway,
    OrderLookupError,
    GatewaySubmissionError,
    normalize_order_name,
)
from .shopify_connector import ShopifyOrderLookup, order_from_shopify
from .pagarme_connector import PagarmeGateway
from .simulator_connector import (
    SimulatorOrderLookup,
    SimulatorGateway,
    SimulatorConfig,
    SimulatedSubmission,
)

__all__ = [
    # Interfaces
    "OrderLookupClient",
    "DisputeGateway",
    "OrderLookupError",
    "GatewaySubmissionError",
    "normalize_order_name",
    # Real collaborators
    "ShopifyOrderLookup",
    "order_from_shopify",
    "PagarmeGateway",
    # Simulators
    "SimulatorOrderLookup",
    "SimulatorGateway",
    "SimulatorConfig",
    "SimulatedSubmission",
    "build_order_lookup",
    "build_gateway",
]


def build_order_lookup(settings: Settings) -> Optional[OrderLookupClient]:
    """Shopify lookup when credentials are configured, otherwise None."""
    if not settings.shopify_configured:
        return None
    return ShopifyOrderLookup(
        store_domain=settings.shopify_store_domain,
        access_token=settings.shopify_access_token,
        api_version=settings.shopify_api_version,
        timeout=settings.order_lookup_timeout,
    )


def build_gateway(settings: Settings) -> Optional[DisputeGateway]:
    """Pagar.me gateway when an API key is configured, otherwise None."""
    if not settings.pagarme_api_key:
        return None
    return PagarmeGateway(
        api_key=settings.pagarme_api_key,
        base_url=settings.pagarme_base_url,
    )
