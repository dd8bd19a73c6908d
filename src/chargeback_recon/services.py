"""Defense service layer: lifecycle transitions with persistence and gateway hand-off."""

import logging
from typing import Optional, Dict, Any, List, Tuple

from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .connectors.base import DisputeGateway, GatewaySubmissionError
from .database import (
    Defense,
    DefenseHistory,
    DefenseRepository,
    DefenseHistoryRepository,
    DefenseAction,
)
from .drafts import build_draft_defense
from .lifecycle import (
    InvalidTransitionError,
    is_terminal_dispute,
    validate_defense_transition,
    validate_dispute_transition,
)
from .models import DefenseSource, DefenseStatus, DisputeEvent, DisputeStatus, utcnow
from .store import EventStore

logger = logging.getLogger(__name__)


class DefenseNotFoundError(LookupError):
    """No defense with the given ID exists."""

    def __init__(self, defense_id: str):
        self.defense_id = defense_id
        super().__init__(f"Defense not found: {defense_id}")


class ActiveDefenseConflictError(Exception):
    """Another defense became active for the dispute while this one was being created."""

    def __init__(self, dispute_id: str):
        self.dispute_id = dispute_id
        super().__init__(f"Dispute {dispute_id} already has an active defense")


class ParentDispute(BaseModel):
    """Best-effort dispute fields used when a defense arrives before its dispute."""
    charge_id: Optional[str] = None
    amount_minor_units: int = Field(default=0, ge=0)
    reason_code: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None


class DefenseService:
    """Service class for defense operations with persistence."""

    def __init__(
        self,
        session: AsyncSession,
        store: EventStore,
        gateway: Optional[DisputeGateway] = None,
    ):
        """Initialize the service.

        Args:
            session: AsyncSession for the defense tables.
            store: Event store holding the owning disputes.
            gateway: Gateway used for submission; submitting without one fails.
        """
        self.session = session
        self.store = store
        self.gateway = gateway
        self.defense_repo = DefenseRepository(session)
        self.history_repo = DefenseHistoryRepository(session)

    async def ensure_dispute(
        self,
        dispute_id: str,
        parent: Optional[ParentDispute] = None,
    ) -> Tuple[DisputeEvent, bool]:
        """Create the owning dispute if it is absent, then return it.

        Returns:
            ``(dispute, created)``.
        """
        existing = await self.store.get(dispute_id)
        if existing is not None:
            return existing, False

        fields = parent or ParentDispute()
        record = DisputeEvent(
            id=dispute_id,
            status=DisputeStatus.OPENED,
            **fields.model_dump(),
        )
        record.draft_defense = build_draft_defense(record)
        # A webhook may have stored the dispute meanwhile; keep its copy.
        stored = await self.store.put(record, merge=lambda current, _incoming: current)
        if stored is record:
            logger.warning(f"Dispute {dispute_id} did not exist; created it from defense data")
        return stored, stored is record

    async def _get(self, defense_id: str) -> Defense:
        defense = await self.defense_repo.get_by_id(defense_id)
        if defense is None:
            raise DefenseNotFoundError(defense_id)
        return defense

    async def create_defense(
        self,
        dispute_id: str,
        content: str,
        source: DefenseSource = DefenseSource.MANUAL,
        contestation_type: Optional[str] = None,
        form_data: Optional[Dict[str, Any]] = None,
        parent: Optional[ParentDispute] = None,
    ) -> Defense:
        """Store a new drafted defense and make it the dispute's active one.

        Earlier defenses that never reached the gateway are superseded.

        Raises:
            InvalidTransitionError: The dispute is terminal, or its active
                defense has already been submitted.
            ActiveDefenseConflictError: A concurrent request created the
                active defense first; the session is rolled back.
        """
        dispute, _ = await self.ensure_dispute(dispute_id, parent)
        if is_terminal_dispute(dispute.status):
            raise InvalidTransitionError("dispute", dispute.status.value, "defended")

        active = await self.defense_repo.get_active_for_dispute(dispute_id)
        if active is not None:
            if active.status not in (DefenseStatus.DRAFTED.value, DefenseStatus.APPROVED.value):
                raise InvalidTransitionError("defense", active.status, DefenseStatus.DRAFTED.value)
            await self.defense_repo.deactivate_for_dispute(dispute_id)

        if contestation_type is None and dispute.draft_defense is not None:
            contestation_type = dispute.draft_defense.contestation_type.value

        try:
            defense = await self.defense_repo.create(
                dispute_id=dispute_id,
                content=content,
                source=source.value,
                contestation_type=contestation_type,
                form_data=form_data,
            )
        except IntegrityError as e:
            # Another request activated a defense for this dispute first.
            await self.session.rollback()
            logger.warning(f"Concurrent defense creation for dispute {dispute_id}")
            raise ActiveDefenseConflictError(dispute_id) from e

        if active is not None:
            await self.history_repo.create(
                defense_id=active.id,
                action=DefenseAction.SUPERSEDE.value,
                previous_status=active.status,
                new_status=active.status,
                action_metadata={"superseded_by": defense.id},
            )
        await self.history_repo.create(
            defense_id=defense.id,
            action=DefenseAction.CREATE.value,
            new_status=defense.status,
        )
        return defense

    async def approve(self, defense_id: str, submit: bool = False) -> Defense:
        """Approve a drafted defense, optionally submitting it in the same step."""
        if submit:
            return await self.submit(defense_id)

        defense = await self._get(defense_id)
        previous = defense.status
        target = validate_defense_transition(previous, DefenseStatus.APPROVED)
        await self.defense_repo.update_status(defense, target.value)
        await self.history_repo.create(
            defense_id=defense.id,
            action=DefenseAction.APPROVE.value,
            previous_status=previous,
            new_status=target.value,
        )
        return defense

    async def submit(self, defense_id: str) -> Defense:
        """Hand the defense to the gateway and move it to ``submitted``.

        Both records are validated before the gateway is called. On gateway
        failure the defense keeps its status, the failure is recorded in its
        history and committed, and the error is re-raised.

        Raises:
            DefenseNotFoundError: Unknown defense.
            InvalidTransitionError: Defense or dispute cannot be submitted.
            GatewaySubmissionError: The gateway did not accept the defense.
        """
        defense = await self._get(defense_id)
        previous = defense.status
        target = validate_defense_transition(previous, DefenseStatus.SUBMITTED)

        dispute, _ = await self.ensure_dispute(defense.dispute_id)
        if dispute.status == DisputeStatus.OPENED:
            validate_dispute_transition(dispute.status, DisputeStatus.SUBMITTED)
        elif dispute.status != DisputeStatus.SUBMITTED:
            raise InvalidTransitionError("dispute", dispute.status.value, DisputeStatus.SUBMITTED.value)

        try:
            if self.gateway is None:
                raise GatewaySubmissionError("No payment gateway is configured")
            response = await self.gateway.submit_defense(
                dispute_id=defense.dispute_id,
                evidence=defense.content.encode("utf-8"),
            )
        except GatewaySubmissionError as e:
            logger.error(f"Submission of defense {defense.id} failed: {e}")
            await self.history_repo.create(
                defense_id=defense.id,
                action=DefenseAction.SUBMIT_FAILED.value,
                previous_status=previous,
                new_status=previous,
                error_message=str(e),
            )
            await self.session.commit()
            raise

        await self.defense_repo.update_status(
            defense,
            target.value,
            submission_response=response,
            submitted_at=utcnow(),
        )
        await self.history_repo.create(
            defense_id=defense.id,
            action=DefenseAction.SUBMIT.value,
            previous_status=previous,
            new_status=target.value,
        )

        def mark_submitted(current: DisputeEvent) -> DisputeEvent:
            if current.status == DisputeStatus.OPENED:
                current.status = DisputeStatus.SUBMITTED
            return current

        await self.store.update(defense.dispute_id, mark_submitted)
        logger.info(f"Submitted defense {defense.id} for dispute {defense.dispute_id}")
        return defense

    async def record_outcome(self, defense_id: str, outcome: DefenseStatus) -> Defense:
        """Record the gateway's verdict on a submitted defense.

        The owning dispute moves to the same outcome. If the dispute cannot
        take that outcome nothing is changed.
        """
        defense = await self._get(defense_id)
        previous = defense.status
        if DefenseStatus(outcome) not in (DefenseStatus.WON, DefenseStatus.LOST):
            raise InvalidTransitionError("defense", previous, DefenseStatus(outcome).value)
        target = validate_defense_transition(previous, outcome)
        dispute_outcome = DisputeStatus(target.value)

        await self.ensure_dispute(defense.dispute_id)

        def apply_outcome(current: DisputeEvent) -> DisputeEvent:
            if current.status != dispute_outcome:
                current.status = validate_dispute_transition(current.status, dispute_outcome)
            return current

        await self.store.update(defense.dispute_id, apply_outcome)

        await self.defense_repo.update_status(defense, target.value)
        await self.history_repo.create(
            defense_id=defense.id,
            action=DefenseAction.OUTCOME.value,
            previous_status=previous,
            new_status=target.value,
        )
        logger.info(f"Defense {defense.id} outcome: {target.value}")
        return defense

    async def get_defense(self, defense_id: str) -> Tuple[Defense, Optional[DisputeEvent]]:
        """A defense together with its owning dispute, if still stored."""
        defense = await self._get(defense_id)
        return defense, await self.store.get(defense.dispute_id)

    async def list_defenses(
        self,
        source: Optional[DefenseSource] = None,
        status: Optional[DefenseStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Defense]:
        return await self.defense_repo.list_filtered(
            source=source.value if source else None,
            status=status.value if status else None,
            limit=limit,
            offset=offset,
        )

    async def get_history(self, defense_id: str) -> List[DefenseHistory]:
        await self._get(defense_id)
        return await self.history_repo.get_by_defense_id(defense_id)
