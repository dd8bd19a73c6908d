"""Chargeback ingestion and reconciliation engine."""

from .models import (
    DisputeEvent,
    DisputeStatus,
    DefenseStatus,
    DefenseSource,
    MatchMethod,
    MatchResult,
    OrderRecord,
)
from .signatures import SignatureEncoding, SignatureProfile, verify
from .lifecycle import InvalidTransitionError

__version__ = "0.1.0"

__all__ = [
    "DisputeEvent",
    "DisputeStatus",
    "DefenseStatus",
    "DefenseSource",
    "MatchMethod",
    "MatchResult",
    "OrderRecord",
    "SignatureEncoding",
    "SignatureProfile",
    "verify",
    "InvalidTransitionError",
]
