"""Builders for test records, payloads and signed headers."""

import json
from decimal import Decimal
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from chargeback_recon.models import DisputeEvent, OrderRecord, LineItem, Fulfillment, TrackingInfo
from chargeback_recon.signatures import SignatureEncoding, compute_signature

PAGARME_SECRET = "pagarme_test_secret"
SHOPIFY_SECRET = "shopify_test_secret"
API_KEY = "test_api_key_12345"

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_dispute(dispute_id: str = "cb_1", minutes: int = 0, **fields: Any) -> DisputeEvent:
    """Dispute created ``minutes`` after a fixed base time."""
    created = BASE_TIME + timedelta(minutes=minutes)
    values: Dict[str, Any] = {
        "id": dispute_id,
        "charge_id": f"ch_{dispute_id}",
        "amount_minor_units": 15000,
        "customer_email": "a@x.com",
        "created_at": created,
        "updated_at": created,
    }
    values.update(fields)
    return DisputeEvent(**values)


def make_order(name: str, total: str, email: str = "a@x.com", tracking: bool = False) -> OrderRecord:
    fulfillments = []
    if tracking:
        fulfillments.append(Fulfillment(
            status="success",
            tracking=TrackingInfo(number="BR123456789", carrier="Correios", url="https://track/BR123"),
        ))
    return OrderRecord(
        id=f"gid_{name.lstrip('#')}",
        display_name=name,
        email=email,
        total_amount=Decimal(total),
        currency="BRL",
        line_items=[LineItem(title="Camiseta", quantity=1, price=Decimal(total))],
        fulfillments=fulfillments,
    )


def dispute_payload(dispute_id: str = "cb_1", **overrides: Any) -> Dict[str, Any]:
    """Gateway webhook body in the ``data`` envelope form."""
    data: Dict[str, Any] = {
        "id": dispute_id,
        "charge_id": f"ch_{dispute_id}",
        "order_id": "or_abc",
        "amount": 15000,
        "reason": "Produto não recebido",
        "customer": {"name": "Ana Souza", "email": "a@x.com"},
        "metadata": {},
    }
    event_type = overrides.pop("type", "chargeback.created")
    data.update(overrides)
    return {"id": "hook_1", "type": event_type, "data": data}


def to_body(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")


def pagarme_headers(body: bytes, secret: str = PAGARME_SECRET) -> Dict[str, str]:
    return {
        "content-type": "application/json",
        "x-pagar-me-signature": compute_signature(body, secret, SignatureEncoding.HEX),
    }


def shopify_headers(body: bytes, topic: str, secret: str = SHOPIFY_SECRET) -> Dict[str, str]:
    return {
        "content-type": "application/json",
        "x-shopify-topic": topic,
        "x-shopify-hmac-sha256": compute_signature(body, secret, SignatureEncoding.BASE64),
    }

