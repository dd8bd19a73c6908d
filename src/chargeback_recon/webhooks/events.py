"""Webhook payload variants and normalisation.

Each source maps its raw JSON onto a closed set of variants. Anything the
engine does not act on becomes ``IgnoredEvent`` and is acknowledged the same
way regardless of source.
"""

import json
import re
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

from ..models import DisputeStatus, MetadataValue, TrackingInfo, ensure_aware

logger = logging.getLogger(__name__)

# Gateway event types
DISPUTE_CREATION_TYPES = frozenset({
    "chargeback.created",
    "charge.chargebacked",
    "charge.dispute.created",
})
DISPUTE_UPDATE_TYPES = frozenset({"charge.dispute.updated"})
DISPUTE_OUTCOME_TYPES: Dict[str, DisputeStatus] = {
    "charge.dispute.won": DisputeStatus.WON,
    "charge.dispute.lost": DisputeStatus.LOST,
    "charge.dispute.closed": DisputeStatus.CLOSED,
}

# Platform topics
ORDERS_FULFILLED = "orders/fulfilled"
FULFILLMENTS_CREATE = "fulfillments/create"

# str.isdigit() also accepts superscripts and other scripts int() rejects.
_DIGITS = re.compile(r"[0-9]+")


class MalformedPayloadError(ValueError):
    """The authenticated payload cannot be normalised."""


class IgnoredEvent(BaseModel):
    """A well-signed event the engine does not act on."""
    kind: Literal["ignored"] = "ignored"
    source: str
    event_type: Optional[str] = None


class DisputeNotification(BaseModel):
    """A normalised gateway dispute event."""
    kind: Literal["dispute"] = "dispute"
    event_type: str
    id: str = Field(..., min_length=1)
    charge_id: Optional[str] = None
    order_id: Optional[str] = None
    amount_minor_units: int = Field(default=0, ge=0)
    currency: str = "BRL"
    reason: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    metadata: Dict[str, MetadataValue] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @property
    def outcome(self) -> Optional[DisputeStatus]:
        """Lifecycle status this event reports, if any."""
        return DISPUTE_OUTCOME_TYPES.get(self.event_type)


class OrderEventBase(BaseModel):
    topic: str
    order_id: Optional[str] = None
    order_name: str
    email: Optional[str] = None
    total_price: Optional[Decimal] = None
    fulfillment_status: Optional[str] = None
    tracking: Optional[TrackingInfo] = None


class OrdersFulfilledEvent(OrderEventBase):
    kind: Literal["orders_fulfilled"] = "orders_fulfilled"


class FulfillmentCreatedEvent(OrderEventBase):
    kind: Literal["fulfillment_created"] = "fulfillment_created"


DisputeWebhook = Annotated[
    Union[DisputeNotification, IgnoredEvent],
    Field(discriminator="kind"),
]
FulfillmentWebhook = Annotated[
    Union[OrdersFulfilledEvent, FulfillmentCreatedEvent, IgnoredEvent],
    Field(discriminator="kind"),
]


def _load_object(raw_body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayloadError(f"Body is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedPayloadError("Body must be a JSON object")
    return payload


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _amount_minor_units(value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise MalformedPayloadError("amount must be an integer number of minor units")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, float) and value.is_integer():
        amount = int(value)
    elif isinstance(value, str) and _DIGITS.fullmatch(value.strip()):
        amount = int(value.strip())
    else:
        raise MalformedPayloadError("amount must be an integer number of minor units")
    if amount < 0:
        raise MalformedPayloadError("amount must not be negative")
    return amount


def _timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def scalar_metadata(raw: Any) -> Dict[str, MetadataValue]:
    """Keep only the scalar entries of a merchant metadata map."""
    metadata: Dict[str, MetadataValue] = {}
    for key, value in _dict(raw).items():
        if value is None or isinstance(value, (str, int, float, bool)):
            metadata[str(key)] = value
        else:
            logger.debug(f"Dropping non-scalar metadata key {key!r}")
    return metadata


def parse_dispute_payload(raw_body: bytes) -> DisputeWebhook:
    """Normalise a gateway dispute webhook body.

    Accepts the fields flat on the body or inside a ``data`` envelope.

    Raises:
        MalformedPayloadError: Invalid JSON, missing type or id, bad amount.
    """
    payload = _load_object(raw_body)
    event_type = _text(payload.get("type"))
    if event_type is None:
        raise MalformedPayloadError("Missing event type")

    known = (
        event_type in DISPUTE_CREATION_TYPES
        or event_type in DISPUTE_UPDATE_TYPES
        or event_type in DISPUTE_OUTCOME_TYPES
    )
    if not known:
        return IgnoredEvent(source="pagarme", event_type=event_type)

    data = payload["data"] if isinstance(payload.get("data"), dict) else payload
    dispute_id = _text(data.get("id"))
    if dispute_id is None:
        raise MalformedPayloadError("Missing dispute id")

    charge = _dict(data.get("charge"))
    customer = _dict(data.get("customer")) or _dict(charge.get("customer"))
    metadata = data.get("metadata")
    if metadata is None:
        metadata = charge.get("metadata")

    return DisputeNotification(
        event_type=event_type,
        id=dispute_id,
        charge_id=_text(data.get("charge_id")) or _text(charge.get("id")) or dispute_id,
        order_id=_text(data.get("order_id")) or _text(_dict(charge.get("order")).get("id")),
        amount_minor_units=_amount_minor_units(data.get("amount")),
        currency=(_text(data.get("currency")) or "BRL").upper(),
        reason=_text(data.get("reason")) or _text(data.get("reason_code")),
        customer_name=_text(customer.get("name")),
        customer_email=_text(customer.get("email")),
        metadata=scalar_metadata(metadata),
        created_at=_timestamp(data.get("created_at")),
    )


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _tracking(number: Any, carrier: Any, url: Any) -> Optional[TrackingInfo]:
    tracking = TrackingInfo(number=_text(number), carrier=_text(carrier), url=_text(url))
    if tracking.number or tracking.carrier or tracking.url:
        return tracking
    return None


def _email(payload: Dict[str, Any]) -> Optional[str]:
    return _text(payload.get("email")) or _text(_dict(payload.get("customer")).get("email"))


def _orders_fulfilled(topic: str, payload: Dict[str, Any]) -> OrdersFulfilledEvent:
    name = _text(payload.get("name"))
    if name is None:
        raise MalformedPayloadError("Missing order name")

    tracking = None
    fulfillments = payload.get("fulfillments")
    if isinstance(fulfillments, list) and fulfillments:
        first = _dict(fulfillments[0])
        info = _dict(first.get("tracking_info"))
        tracking = _tracking(
            info.get("number") or first.get("tracking_number"),
            info.get("company") or first.get("tracking_company"),
            info.get("url") or first.get("tracking_url"),
        )

    return OrdersFulfilledEvent(
        topic=topic,
        order_id=_text(payload.get("id")),
        order_name=name,
        email=_email(payload),
        total_price=_decimal(payload.get("total_price")),
        fulfillment_status=_text(payload.get("fulfillment_status")),
        tracking=tracking,
    )


def _fulfillment_created(topic: str, payload: Dict[str, Any]) -> FulfillmentCreatedEvent:
    name = _text(payload.get("order_name")) or _text(payload.get("name"))
    if name is None:
        raise MalformedPayloadError("Missing order name")
    if not name.startswith("#"):
        name = f"#{name}"

    return FulfillmentCreatedEvent(
        topic=topic,
        order_id=_text(payload.get("order_id")),
        order_name=name,
        email=_email(payload),
        total_price=_decimal(payload.get("total_price")),
        fulfillment_status=_text(payload.get("status")),
        tracking=_tracking(
            payload.get("tracking_number"),
            payload.get("tracking_company"),
            payload.get("tracking_url"),
        ),
    )


_TOPIC_PARSERS = {
    ORDERS_FULFILLED: _orders_fulfilled,
    FULFILLMENTS_CREATE: _fulfillment_created,
}


def parse_fulfillment_payload(
    topic: Optional[str],
    raw_body: bytes,
) -> FulfillmentWebhook:
    """Normalise a platform webhook body for the given topic.

    Bodies of ignored topics are not parsed at all.

    Raises:
        MalformedPayloadError: Missing topic, invalid JSON, missing order name.
    """
    topic = _text(topic)
    if topic is None:
        raise MalformedPayloadError("Missing topic")
    parser = _TOPIC_PARSERS.get(topic)
    if parser is None:
        return IgnoredEvent(source="shopify", event_type=topic)
    return parser(topic, _load_object(raw_body))
