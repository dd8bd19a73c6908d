"""Pre-filled defense drafts derived from disputes and their enrichment."""

from decimal import Decimal
from typing import Optional

from .models import (
    ContestationType,
    DisputeEvent,
    DraftDefense,
    DraftItem,
    FulfillmentInfo,
    OrderRecord,
    TrackingInfo,
)

_NOT_RECEIVED = ("não recebido", "nao recebido", "not received")
_FRAUD = ("fraude", "fraud", "unauthorized", "não autorizad", "nao autorizad")
_CREDIT = ("crédito", "credito", "credit", "reembolso", "refund")


def infer_contestation_type(reason: Optional[str]) -> ContestationType:
    """Map free-text gateway reasons onto a defense template family."""
    text = (reason or "").lower()
    if any(token in text for token in _NOT_RECEIVED):
        return ContestationType.PRODUCT_NOT_RECEIVED
    if any(token in text for token in _FRAUD):
        return ContestationType.FRAUD
    if any(token in text for token in _CREDIT):
        return ContestationType.CREDIT_NOT_PROCESSED
    return ContestationType.COMMERCIAL_DISAGREEMENT


def format_amount(amount: Optional[Decimal]) -> str:
    if amount is None:
        return "0.00"
    return f"{amount:.2f}"


def build_draft_defense(dispute: DisputeEvent) -> DraftDefense:
    """Draft built from gateway fields alone, before any order is known."""
    amount = format_amount(dispute.amount)
    return DraftDefense(
        contestation_type=infer_contestation_type(dispute.reason_code),
        transaction_amount=amount,
        charge_id=dispute.charge_id,
        customer_name=dispute.customer_name or "",
        customer_email=dispute.customer_email or "",
        items=[DraftItem(description="Disputed order", amount=amount)],
    )


def _latest_tracking(order: OrderRecord) -> Optional[TrackingInfo]:
    for fulfillment in reversed(order.fulfillments):
        if fulfillment.tracking is not None:
            return fulfillment.tracking
    return None


def apply_order(draft: DraftDefense, order: OrderRecord) -> DraftDefense:
    """Fill order-derived fields. Fields already set by hand are kept."""
    draft.order_number = order.display_name
    if not draft.customer_email and order.email:
        draft.customer_email = order.email
    if order.line_items:
        draft.items = [
            DraftItem(
                description=item.title,
                amount=format_amount(
                    item.price * item.quantity if item.price is not None else None
                ),
            )
            for item in order.line_items
        ]
    tracking = _latest_tracking(order)
    if tracking is not None:
        draft.tracking_code = draft.tracking_code or tracking.number or ""
        draft.carrier = draft.carrier or tracking.carrier or ""
    return draft


def apply_fulfillment(draft: DraftDefense, info: FulfillmentInfo) -> DraftDefense:
    """Fill order number and tracking from a platform fulfillment event."""
    draft.order_number = info.order_name or draft.order_number
    if info.tracking is not None:
        draft.tracking_code = info.tracking.number or draft.tracking_code
        draft.carrier = info.tracking.carrier or draft.carrier
    return draft
