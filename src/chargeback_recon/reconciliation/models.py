"""Operator-facing models for reconciliation."""

from typing import Optional, List
from pydantic import BaseModel, Field

from ..models import (
    DisputeEvent,
    FulfillmentInfo,
    MatchMethod,
    MATCH_METHOD_LABELS,
    OrderRecord,
    TrackingInfo,
)


class ManualMatchRequest(BaseModel):
    """Operator-supplied order number for a dispute."""
    order_number: str = Field(..., min_length=1, description="Order number, with or without '#'")


class UnifiedDisputeView(BaseModel):
    """A dispute joined with its matched order and the full resolution trail."""
    dispute: DisputeEvent
    order: Optional[OrderRecord] = None
    method: MatchMethod = MatchMethod.NONE
    method_label: str = MATCH_METHOD_LABELS[MatchMethod.NONE]
    attempts: List[str] = Field(default_factory=list)
    fulfillment: Optional[FulfillmentInfo] = None
    tracking: Optional[TrackingInfo] = None
    processing_errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_dispute(cls, dispute: DisputeEvent) -> "UnifiedDisputeView":
        match = dispute.match
        order = match.order if match else None
        method = match.method if match else MatchMethod.NONE

        tracking = None
        if dispute.fulfillment and dispute.fulfillment.tracking:
            tracking = dispute.fulfillment.tracking
        elif order is not None:
            for fulfillment in reversed(order.fulfillments):
                if fulfillment.tracking is not None:
                    tracking = fulfillment.tracking
                    break

        return cls(
            dispute=dispute,
            order=order,
            method=method,
            method_label=MATCH_METHOD_LABELS[method],
            attempts=list(match.attempts) if match else [],
            fulfillment=dispute.fulfillment,
            tracking=tracking,
            processing_errors=list(dispute.processing_errors),
        )


class UnifiedDisputeList(BaseModel):
    """All stored disputes in unified form, newest first."""
    total: int = 0
    matched: int = 0
    unmatched: int = 0
    lookup_configured: bool = False
    disputes: List[UnifiedDisputeView] = Field(default_factory=list)
