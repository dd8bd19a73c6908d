"""Repository layer for defense persistence operations."""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import DefenseStatus, DefenseSource, utcnow
from .models import Defense, DefenseHistory

logger = logging.getLogger(__name__)


class DefenseRepository:
    """Repository for Defense CRUD operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        dispute_id: str,
        content: str,
        source: str = DefenseSource.MANUAL.value,
        contestation_type: Optional[str] = None,
        form_data: Optional[Dict[str, Any]] = None,
    ) -> Defense:
        """Create a new active defense in ``drafted`` status.

        Args:
            dispute_id: Gateway dispute ID the defense belongs to.
            content: Defense document body.
            source: Who authored it (automatic or manual).
            contestation_type: Defense template family.
            form_data: Form fields the document was generated from.

        Returns:
            Created Defense instance.
        """
        defense = Defense(
            dispute_id=dispute_id,
            content=content,
            source=source,
            contestation_type=contestation_type,
            status=DefenseStatus.DRAFTED.value,
            is_active=True,
        )
        if form_data:
            defense.form_data = form_data

        self.session.add(defense)
        await self.session.flush()

        logger.info(f"Created defense {defense.id} for dispute {dispute_id}")
        return defense

    async def get_by_id(self, defense_id: str) -> Optional[Defense]:
        result = await self.session.execute(
            select(Defense).where(Defense.id == defense_id)
        )
        return result.scalar_one_or_none()

    async def get_active_for_dispute(self, dispute_id: str) -> Optional[Defense]:
        result = await self.session.execute(
            select(Defense).where(
                Defense.dispute_id == dispute_id,
                Defense.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def list_for_dispute(self, dispute_id: str) -> List[Defense]:
        """All defenses of a dispute, newest first."""
        result = await self.session.execute(
            select(Defense)
            .where(Defense.dispute_id == dispute_id)
            .order_by(Defense.created_at.desc())
        )
        return list(result.scalars().all())

    async def deactivate_for_dispute(self, dispute_id: str) -> int:
        """Mark every defense of a dispute inactive.

        Returns:
            Number of defenses that were active.
        """
        result = await self.session.execute(
            update(Defense)
            .where(Defense.dispute_id == dispute_id, Defense.is_active.is_(True))
            .values(is_active=False, updated_at=utcnow())
        )
        await self.session.flush()
        return result.rowcount or 0

    async def update_status(
        self,
        defense: Defense,
        new_status: str,
        submission_response: Optional[Dict[str, Any]] = None,
        submitted_at: Optional[datetime] = None,
    ) -> Defense:
        defense.status = new_status
        defense.updated_at = utcnow()
        if submission_response is not None:
            defense.submission_response = submission_response
        if submitted_at is not None:
            defense.submitted_at = submitted_at

        await self.session.flush()
        logger.info(f"Updated defense {defense.id} status to {new_status}")
        return defense

    async def list_filtered(
        self,
        source: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Defense]:
        """List defenses, newest first, optionally filtered.

        Args:
            source: Only defenses from this source.
            status: Only defenses in this status.
            limit: Maximum number of results.
            offset: Number of results to skip.
        """
        query = select(Defense)
        if source:
            query = query.where(Defense.source == source)
        if status:
            query = query.where(Defense.status == status)
        result = await self.session.execute(
            query.order_by(Defense.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())


class DefenseHistoryRepository:
    """Repository for DefenseHistory records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        defense_id: str,
        action: str,
        new_status: str,
        previous_status: Optional[str] = None,
        error_message: Optional[str] = None,
        action_metadata: Optional[Dict[str, Any]] = None,
    ) -> DefenseHistory:
        """Record a defense transition or a failed attempt at one.

        Args:
            defense_id: Associated defense ID.
            action: Action performed.
            new_status: Status after the action (unchanged on failure).
            previous_status: Status before the action.
            error_message: Error message if the action failed.
            action_metadata: Additional metadata for this action.
        """
        history = DefenseHistory(
            defense_id=defense_id,
            action=action,
            new_status=new_status,
            previous_status=previous_status,
            error_message=error_message,
        )
        if action_metadata:
            history.action_metadata = action_metadata

        self.session.add(history)
        await self.session.flush()

        logger.debug(f"Recorded defense history for {defense_id}: {action} -> {new_status}")
        return history

    async def get_by_defense_id(
        self,
        defense_id: str,
        limit: int = 100,
    ) -> List[DefenseHistory]:
        """History of a defense, newest first."""
        result = await self.session.execute(
            select(DefenseHistory)
            .where(DefenseHistory.defense_id == defense_id)
            .order_by(DefenseHistory.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
