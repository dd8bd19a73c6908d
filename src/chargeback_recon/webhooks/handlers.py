"""Ingestion of authenticated webhook events into the event store.

Gateway re-deliveries refresh only gateway-owned fields of a stored dispute.
Enrichment (match, fulfillment, pre-filled order fields) and any lifecycle
status the dispute has advanced to survive a re-delivery. Everything after
the record is stored is best-effort: failures are appended to the dispute's
``processing_errors`` and the caller is still acknowledged.
"""

import logging
from decimal import Decimal
from typing import Dict, Mapping, Optional, Union

from pydantic import BaseModel, Field

from ..config import PAGARME_SOURCE, SHOPIFY_SOURCE
from ..connectors.base import normalize_order_name
from ..drafts import apply_fulfillment, build_draft_defense, infer_contestation_type, format_amount
from ..lifecycle import InvalidTransitionError, validate_dispute_transition
from ..models import (
    DisputeEvent,
    FulfillmentInfo,
    MatchMethod,
    MatchResult,
    OrderRecord,
    utcnow,
)
from ..reconciliation.resolver import DEFAULT_TOLERANCE, match_stored_disputes
from ..reconciliation.service import ReconciliationService
from ..signatures import SignatureProfile, verify_profile
from ..store import EventStore, DisputeNotFoundError
from .events import (
    DISPUTE_CREATION_TYPES,
    DisputeNotification,
    FulfillmentCreatedEvent,
    IgnoredEvent,
    OrdersFulfilledEvent,
    parse_dispute_payload,
    parse_fulfillment_payload,
)

logger = logging.getLogger(__name__)


class SignatureVerificationError(Exception):
    """The request is not authentically signed by its claimed source."""

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"Invalid or missing {source} webhook signature")


class WebhookAck(BaseModel):
    """Acknowledgement returned to the sending system."""
    received: bool = True
    ignored: Optional[bool] = None
    event_type: Optional[str] = None
    dispute_id: Optional[str] = None
    status: Optional[str] = None
    matched: Optional[bool] = None
    # Whether the automatic resolver should run for ``dispute_id``.
    reconcile: bool = Field(default=False, exclude=True)


def dispute_from_notification(event: DisputeNotification) -> DisputeEvent:
    """Build a fresh dispute record from a gateway notification."""
    dispute = DisputeEvent(
        id=event.id,
        charge_id=event.charge_id,
        order_id=event.order_id,
        amount_minor_units=event.amount_minor_units,
        currency=event.currency,
        reason_code=event.reason,
        customer_name=event.customer_name,
        customer_email=event.customer_email,
        event_type=event.event_type,
        metadata=dict(event.metadata),
        gateway=PAGARME_SOURCE,
    )
    if event.created_at is not None:
        dispute.created_at = event.created_at
    dispute.draft_defense = build_draft_defense(dispute)
    return dispute


def merge_redelivery(existing: DisputeEvent, incoming: DisputeEvent) -> DisputeEvent:
    """Refresh gateway-owned fields of ``existing`` from ``incoming``.

    Incoming values win where present. ``created_at``, status, match,
    fulfillment and processing errors stay as stored.
    """
    existing.charge_id = incoming.charge_id or existing.charge_id
    existing.order_id = incoming.order_id or existing.order_id
    if incoming.amount_minor_units or not existing.amount_minor_units:
        existing.amount_minor_units = incoming.amount_minor_units
    existing.currency = incoming.currency
    existing.reason_code = incoming.reason_code or existing.reason_code
    existing.customer_name = incoming.customer_name or existing.customer_name
    existing.customer_email = incoming.customer_email or existing.customer_email
    existing.event_type = incoming.event_type
    if incoming.metadata:
        existing.metadata = incoming.metadata
    existing.updated_at = utcnow()

    draft = existing.draft_defense or build_draft_defense(existing)
    draft.contestation_type = infer_contestation_type(existing.reason_code)
    draft.transaction_amount = format_amount(existing.amount)
    draft.charge_id = existing.charge_id
    draft.customer_name = existing.customer_name or draft.customer_name
    draft.customer_email = existing.customer_email or draft.customer_email
    existing.draft_defense = draft
    return existing


def order_from_event(event: Union[OrdersFulfilledEvent, FulfillmentCreatedEvent]) -> OrderRecord:
    """Partial order view carried by a platform order event."""
    return OrderRecord(
        id=event.order_id or event.order_name,
        display_name=normalize_order_name(event.order_name),
        email=event.email,
        total_amount=event.total_price,
    )


class IngestionService:
    """Verifies, normalises and stores inbound webhook events."""

    def __init__(
        self,
        store: EventStore,
        profiles: Dict[str, SignatureProfile],
        tolerance: Decimal = DEFAULT_TOLERANCE,
        topic_header: str = "x-shopify-topic",
    ):
        self.store = store
        self.profiles = profiles
        self.tolerance = tolerance
        self.topic_header = topic_header.lower()

    def authenticate(self, source: str, raw_body: bytes, headers: Mapping[str, str]) -> None:
        """Raise SignatureVerificationError unless ``raw_body`` is signed by ``source``."""
        profile = self.profiles.get(source)
        if profile is None or not verify_profile(profile, raw_body, headers):
            logger.warning(f"Rejected {source} webhook: invalid or missing signature")
            raise SignatureVerificationError(source)

    async def record_error(self, dispute_id: str, message: str) -> None:
        """Append a processing failure to a stored dispute."""
        def append(current: DisputeEvent) -> DisputeEvent:
            current.processing_errors.append(f"{utcnow().isoformat()} {message}")
            return current

        try:
            await self.store.update(dispute_id, append)
        except DisputeNotFoundError:
            logger.warning(f"Cannot record error on evicted dispute {dispute_id}: {message}")

    async def handle_dispute(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookAck:
        """Ingest a gateway dispute webhook.

        Raises:
            SignatureVerificationError: Authentication failed; nothing is read.
            MalformedPayloadError: Authenticated but unusable payload.
        """
        self.authenticate(PAGARME_SOURCE, raw_body, headers)
        event = parse_dispute_payload(raw_body)

        if isinstance(event, IgnoredEvent):
            logger.info(f"Ignoring gateway event type {event.event_type}")
            return WebhookAck(ignored=True, event_type=event.event_type)

        stored = await self.store.put(dispute_from_notification(event), merge=merge_redelivery)
        logger.info(
            f"Received dispute {stored.id} ({event.event_type}) "
            f"amount={format_amount(stored.amount)} {stored.currency}"
        )

        outcome = event.outcome
        if outcome is not None and stored.status != outcome:
            stored = await self._apply_gateway_outcome(stored.id, outcome)

        return WebhookAck(
            event_type=event.event_type,
            dispute_id=stored.id,
            status=stored.status.value,
            reconcile=event.event_type in DISPUTE_CREATION_TYPES and stored.match is None,
        )

    async def _apply_gateway_outcome(self, dispute_id: str, outcome) -> DisputeEvent:
        def transition(current: DisputeEvent) -> DisputeEvent:
            if current.status != outcome:
                current.status = validate_dispute_transition(current.status, outcome)
            return current

        try:
            updated = await self.store.update(dispute_id, transition)
            logger.info(f"Dispute {dispute_id} moved to {outcome.value} by gateway")
            return updated
        except InvalidTransitionError as e:
            logger.warning(f"Gateway outcome for {dispute_id} rejected: {e}")
            await self.record_error(dispute_id, str(e))
        stored = await self.store.get(dispute_id)
        if stored is None:
            raise DisputeNotFoundError(dispute_id)
        return stored

    async def handle_fulfillment(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookAck:
        """Ingest a platform order/fulfillment webhook.

        The event is matched against disputes already on file and enriches
        the best candidate in place.

        Raises:
            SignatureVerificationError: Authentication failed.
            MalformedPayloadError: Missing topic or unusable payload.
        """
        self.authenticate(SHOPIFY_SOURCE, raw_body, headers)
        topic = next(
            (value for name, value in headers.items() if name.lower() == self.topic_header),
            None,
        )
        event = parse_fulfillment_payload(topic, raw_body)

        if isinstance(event, IgnoredEvent):
            logger.info(f"Ignoring platform topic {event.event_type}")
            return WebhookAck(ignored=True, event_type=event.event_type)

        candidate = match_stored_disputes(
            await self.store.get_all(),
            email=event.email,
            order_total=event.total_price,
            tolerance=self.tolerance,
            order_name=event.order_name,
        )
        if candidate.dispute is None:
            logger.info(f"No stored dispute for order {event.order_name} ({event.topic})")
            return WebhookAck(event_type=event.topic, matched=False)

        order_name = normalize_order_name(event.order_name)
        info = FulfillmentInfo(
            order_name=order_name,
            fulfillment_status=event.fulfillment_status,
            tracking=event.tracking,
            topic=event.topic,
        )
        method = (
            MatchMethod.EMAIL_AMOUNT_MATCH if candidate.amount_checked
            else MatchMethod.EMAIL_FIRST_ORDER
        )
        attempts = [f"{event.topic} webhook for order {order_name}", *candidate.attempts]
        conflicting: Optional[str] = None

        def enrich(current: DisputeEvent) -> DisputeEvent:
            nonlocal conflicting
            if current.match is not None and current.match.matched:
                matched_name = current.match.order.display_name
                if matched_name != order_name:
                    # The matched order owns the draft and fulfillment fields.
                    conflicting = matched_name
                    current.match.attempts.append(
                        f"{event.topic} webhook for order {order_name} -> "
                        f"ignored, dispute is matched to {matched_name}"
                    )
                    return current
            else:
                current.match = MatchResult(
                    order=order_from_event(event),
                    method=method,
                    attempts=attempts,
                )
            current.fulfillment = info
            if current.draft_defense is None:
                current.draft_defense = build_draft_defense(current)
            apply_fulfillment(current.draft_defense, info)
            return current

        try:
            stored = await self.store.update(candidate.dispute.id, enrich)
        except DisputeNotFoundError:
            logger.info(f"Dispute {candidate.dispute.id} evicted before enrichment")
            return WebhookAck(event_type=event.topic, matched=False)

        if conflicting is not None:
            logger.warning(
                f"Order {order_name} not applied to dispute {stored.id}: "
                f"already matched to {conflicting}"
            )
            return WebhookAck(
                event_type=event.topic,
                dispute_id=stored.id,
                status=stored.status.value,
                matched=False,
            )

        logger.info(f"Enriched dispute {stored.id} with order {order_name} ({event.topic})")
        return WebhookAck(
            event_type=event.topic,
            dispute_id=stored.id,
            status=stored.status.value,
            matched=True,
        )

    async def auto_reconcile(self, reconciliation: ReconciliationService, dispute_id: str) -> None:
        """Background resolver run after a dispute is stored.

        Failures are recorded on the dispute rather than raised.
        """
        try:
            await reconciliation.reconcile(dispute_id)
        except DisputeNotFoundError:
            logger.info(f"Dispute {dispute_id} evicted before auto-reconcile")
        except Exception as e:
            logger.exception(f"Auto-reconcile of dispute {dispute_id} failed")
            await self.record_error(dispute_id, f"auto-reconcile failed: {e}")
