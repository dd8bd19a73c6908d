"""SQLAlchemy models for defense persistence."""

import uuid
import json
import enum
from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import (
    Boolean,
    String,
    DateTime,
    ForeignKey,
    Text,
    Index,
    text,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column

from ..models import DefenseSource, DefenseStatus, utcnow


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class DefenseAction(str, enum.Enum):
    """Types of defense actions tracked in history."""
    CREATE = "create"
    SUPERSEDE = "supersede"
    APPROVE = "approve"
    SUBMIT = "submit"
    SUBMIT_FAILED = "submit_failed"
    OUTCOME = "outcome"


def _dumps(value: Optional[Dict[str, Any]]) -> Optional[str]:
    return json.dumps(value, default=str) if value is not None else None


def _loads(value: Optional[str]) -> Optional[Dict[str, Any]]:
    return json.loads(value) if value else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Defense(Base):
    """A contestation document for a dispute.

    ``dispute_id`` is the gateway dispute ID held in the event store, not a
    foreign key: disputes do not live in this database. A dispute may own
    several defenses over time; at most one has ``is_active`` set.
    """
    __tablename__ = "defenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    dispute_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=DefenseStatus.DRAFTED.value)
    source: Mapped[str] = mapped_column(String(50), nullable=False, default=DefenseSource.MANUAL.value)
    contestation_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Defense document body handed to the gateway
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Snapshot of the form fields the document was generated from
    form_data_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Gateway response once submitted
    submission_response_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    history: Mapped[List["DefenseHistory"]] = relationship(
        "DefenseHistory",
        back_populates="defense",
        cascade="all, delete-orphan",
        order_by="DefenseHistory.created_at.desc()",
    )

    __table_args__ = (
        Index("ix_defenses_status", "status"),
        Index("ix_defenses_source", "source"),
        Index("ix_defenses_created_at", "created_at"),
        # At most one active defense per dispute.
        Index(
            "uq_defenses_active_dispute",
            "dispute_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    @property
    def form_data(self) -> Optional[Dict[str, Any]]:
        return _loads(self.form_data_json)

    @form_data.setter
    def form_data(self, value: Optional[Dict[str, Any]]) -> None:
        self.form_data_json = _dumps(value)

    @property
    def submission_response(self) -> Optional[Dict[str, Any]]:
        """Opaque gateway payload recorded on submission."""
        return _loads(self.submission_response_json)

    @submission_response.setter
    def submission_response(self, value: Optional[Dict[str, Any]]) -> None:
        self.submission_response_json = _dumps(value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert defense to dictionary representation."""
        return {
            "id": self.id,
            "dispute_id": self.dispute_id,
            "status": self.status,
            "source": self.source,
            "contestation_type": self.contestation_type,
            "is_active": self.is_active,
            "content": self.content,
            "form_data": self.form_data,
            "submission_response": self.submission_response,
            "submitted_at": _iso(self.submitted_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class DefenseHistory(Base):
    """Every defense transition, including failed gateway hand-offs."""
    __tablename__ = "defense_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    defense_id: Mapped[str] = mapped_column(String(36), ForeignKey("defenses.id"), nullable=False, index=True)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    previous_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)

    # Error message if the action failed
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    defense: Mapped["Defense"] = relationship("Defense", back_populates="history")

    __table_args__ = (
        Index("ix_defense_history_action", "action"),
        Index("ix_defense_history_created_at", "created_at"),
    )

    @property
    def action_metadata(self) -> Optional[Dict[str, Any]]:
        return _loads(self.action_metadata_json)

    @action_metadata.setter
    def action_metadata(self, value: Optional[Dict[str, Any]]) -> None:
        self.action_metadata_json = _dumps(value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "defense_id": self.defense_id,
            "action": self.action,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "error_message": self.error_message,
            "action_metadata": self.action_metadata,
            "created_at": _iso(self.created_at),
        }
