"""Domain models for disputes, orders and match results."""

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, List, Union

from pydantic import BaseModel, Field, field_validator, model_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so records always compare cleanly."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Merchant metadata is opaque: a flat map of scalar values, nothing more.
MetadataValue = Union[str, int, float, bool, None]


class DisputeStatus(str, enum.Enum):
    """Lifecycle of a dispute as reported by the gateway."""
    OPENED = "opened"
    SUBMITTED = "submitted"
    WON = "won"
    LOST = "lost"
    CLOSED = "closed"


class DefenseStatus(str, enum.Enum):
    """Lifecycle of a defense document."""
    DRAFTED = "drafted"
    APPROVED = "approved"
    SUBMITTED = "submitted"
    WON = "won"
    LOST = "lost"


class DefenseSource(str, enum.Enum):
    """Who authored a defense."""
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class ContestationType(str, enum.Enum):
    """Defense template family, inferred from the dispute reason."""
    PRODUCT_NOT_RECEIVED = "product_not_received"
    FRAUD = "fraud"
    CREDIT_NOT_PROCESSED = "credit_not_processed"
    COMMERCIAL_DISAGREEMENT = "commercial_disagreement"


class MatchMethod(str, enum.Enum):
    """How a dispute was associated with an order."""
    METADATA_ORDER_NUMBER = "metadata_order_number"
    EMAIL_AMOUNT_MATCH = "email_amount_match"
    EMAIL_FIRST_ORDER = "email_first_order"
    MANUAL = "manual"
    NONE = "none"


MATCH_METHOD_LABELS: Dict[MatchMethod, str] = {
    MatchMethod.METADATA_ORDER_NUMBER: "Metadata (order number)",
    MatchMethod.EMAIL_AMOUNT_MATCH: "Email + amount",
    MatchMethod.EMAIL_FIRST_ORDER: "Email (first order, low confidence)",
    MatchMethod.MANUAL: "Manual lookup",
    MatchMethod.NONE: "No match",
}


class TrackingInfo(BaseModel):
    """Shipment tracking triple."""
    number: Optional[str] = None
    carrier: Optional[str] = None
    url: Optional[str] = None


class Fulfillment(BaseModel):
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    tracking: Optional[TrackingInfo] = None


class LineItem(BaseModel):
    title: str
    quantity: int = 1
    price: Optional[Decimal] = None
    sku: Optional[str] = None


class OrderRecord(BaseModel):
    """Read-only view of an e-commerce platform order."""
    id: str = Field(..., description="Platform order ID")
    display_name: str = Field(..., description="Human order number, e.g. '#1234'")
    email: Optional[str] = None
    total_amount: Optional[Decimal] = Field(None, description="Order total in major units")
    currency: Optional[str] = None
    line_items: List[LineItem] = Field(default_factory=list)
    fulfillments: List[Fulfillment] = Field(default_factory=list)


class MatchResult(BaseModel):
    """Outcome of reconciling a dispute with an order.

    ``attempts`` is an operator-facing audit trail: one line per strategy
    tried and what came of it.
    """
    order: Optional[OrderRecord] = None
    method: MatchMethod = MatchMethod.NONE
    attempts: List[str] = Field(default_factory=list)
    resolved_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _method_matches_order(self) -> "MatchResult":
        if (self.method == MatchMethod.NONE) != (self.order is None):
            raise ValueError("method must be 'none' exactly when no order is matched")
        return self

    @property
    def matched(self) -> bool:
        return self.order is not None

    @property
    def label(self) -> str:
        return MATCH_METHOD_LABELS[self.method]


class DraftItem(BaseModel):
    description: str
    amount: str


class DraftDefense(BaseModel):
    """Defense form fields pre-filled from the dispute and its enrichment."""
    contestation_type: ContestationType = ContestationType.COMMERCIAL_DISAGREEMENT
    transaction_amount: str = "0.00"
    charge_id: Optional[str] = None
    order_number: str = ""
    customer_name: str = ""
    customer_email: str = ""
    tracking_code: str = ""
    carrier: str = ""
    items: List[DraftItem] = Field(default_factory=list)


class FulfillmentInfo(BaseModel):
    """Fulfillment data attached by a platform webhook."""
    order_name: str
    fulfillment_status: Optional[str] = None
    tracking: Optional[TrackingInfo] = None
    topic: str
    received_at: datetime = Field(default_factory=utcnow)


class DisputeEvent(BaseModel):
    """A normalised gateway dispute notification, enriched in place over time."""
    id: str = Field(..., min_length=1, description="Gateway-assigned dispute ID")
    charge_id: Optional[str] = None
    order_id: Optional[str] = Field(None, description="Gateway-side order reference")
    amount_minor_units: int = Field(default=0, ge=0)
    currency: str = "BRL"
    reason_code: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    status: DisputeStatus = DisputeStatus.OPENED
    gateway: str = "pagarme"
    event_type: Optional[str] = None
    metadata: Dict[str, MetadataValue] = Field(default_factory=dict)
    draft_defense: Optional[DraftDefense] = None
    match: Optional[MatchResult] = None
    fulfillment: Optional[FulfillmentInfo] = None
    processing_errors: List[str] = Field(default_factory=list)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @property
    def amount(self) -> Decimal:
        """Disputed amount in major units."""
        return Decimal(self.amount_minor_units) / 100
