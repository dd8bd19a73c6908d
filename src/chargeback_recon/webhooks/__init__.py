"""Webhook ingestion for gateway disputes and platform fulfillments."""

from .events import (
    DisputeNotification,
    OrdersFulfilledEvent,
    FulfillmentCreatedEvent,
    IgnoredEvent,
    DisputeWebhook,
    FulfillmentWebhook,
    MalformedPayloadError,
    parse_dispute_payload,
    parse_fulfillment_payload,
    ORDERS_FULFILLED,
    FULFILLMENTS_CREATE,
)
from .handlers import (
    IngestionService,
    SignatureVerificationError,
    WebhookAck,
    merge_redelivery,
)

__all__ = [
    # Variants
    "DisputeNotification",
    "OrdersFulfilledEvent",
    "FulfillmentCreatedEvent",
    "IgnoredEvent",
    "DisputeWebhook",
    "FulfillmentWebhook",
    "MalformedPayloadError",
    "parse_dispute_payload",
    "parse_fulfillment_payload",
    "ORDERS_FULFILLED",
    "FULFILLMENTS_CREATE",
    # Ingestion
    "IngestionService",
    "SignatureVerificationError",
    "WebhookAck",
    "merge_redelivery",
]
