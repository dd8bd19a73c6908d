"""Dispute-to-order reconciliation."""

from .metadata import extract_order_number, KNOWN_METADATA_KEYS, ORDER_NUMBER_PATTERN
from .resolver import (
    Resolver,
    CandidateMatch,
    match_stored_disputes,
    within_tolerance,
    minor_to_major,
    DEFAULT_TOLERANCE,
)
from .models import ManualMatchRequest, UnifiedDisputeView, UnifiedDisputeList
from .service import (
    ReconciliationService,
    OrderLookupUnavailableError,
    OrderNotFoundError,
    apply_match,
)

__all__ = [
    # Extraction
    "extract_order_number",
    "KNOWN_METADATA_KEYS",
    "ORDER_NUMBER_PATTERN",
    # Resolution
    "Resolver",
    "CandidateMatch",
    "match_stored_disputes",
    "within_tolerance",
    "minor_to_major",
    "DEFAULT_TOLERANCE",
    # Views
    "ManualMatchRequest",
    "UnifiedDisputeView",
    "UnifiedDisputeList",
    # Service
    "ReconciliationService",
    "OrderLookupUnavailableError",
    "OrderNotFoundError",
    "apply_match",
]
