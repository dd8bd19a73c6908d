"""Simulator collaborators for exercising reconciliation without real API calls."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from ..models import OrderRecord
from .base import (
    OrderLookupClient,
    DisputeGateway,
    OrderLookupError,
    GatewaySubmissionError,
    normalize_order_name,
)

logger = logging.getLogger(__name__)


@dataclass
class SimulatorConfig:
    """Configuration for simulator behavior."""
    delay_ms: int = 0  # Simulated response delay in ms
    fail_by_name: bool = False
    fail_by_email: bool = False
    fail_submission: bool = False


class SimulatorOrderLookup(OrderLookupClient):
    """
    In-memory order catalogue.

    Orders are returned by email in insertion order, which stands in for the
    platform's own return order.
    """

    def __init__(
        self,
        orders: Optional[List[OrderRecord]] = None,
        config: Optional[SimulatorConfig] = None,
    ):
        self.config = config or SimulatorConfig()
        self._orders: List[OrderRecord] = list(orders or [])
        self.calls: List[tuple] = []

    def add_order(self, order: OrderRecord) -> None:
        self._orders.append(order)

    async def _delay(self) -> None:
        if self.config.delay_ms > 0:
            await asyncio.sleep(self.config.delay_ms / 1000)

    async def get_order_by_name(self, name: str) -> Optional[OrderRecord]:
        self.calls.append(("name", name))
        await self._delay()
        if self.config.fail_by_name:
            raise OrderLookupError("Simulated lookup failure")
        wanted = normalize_order_name(name)
        for order in self._orders:
            if order.display_name == wanted:
                return order.model_copy(deep=True)
        return None

    async def get_orders_by_email(self, email: str) -> List[OrderRecord]:
        self.calls.append(("email", email))
        await self._delay()
        if self.config.fail_by_email:
            raise OrderLookupError("Simulated lookup failure")
        wanted = email.strip().lower()
        return [
            o.model_copy(deep=True)
            for o in self._orders
            if (o.email or "").lower() == wanted
        ]


@dataclass
class SimulatedSubmission:
    """A defense document accepted by the simulator gateway."""
    id: str
    dispute_id: str
    evidence: bytes
    document_type: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class SimulatorGateway(DisputeGateway):
    """Gateway that records submissions in memory."""

    def __init__(self, config: Optional[SimulatorConfig] = None):
        self.config = config or SimulatorConfig()
        self.submissions: List[SimulatedSubmission] = []
        logger.info("SimulatorGateway initialized")

    async def submit_defense(
        self,
        dispute_id: str,
        evidence: bytes,
        document_type: str = "document",
    ) -> Dict[str, Any]:
        if self.config.delay_ms > 0:
            await asyncio.sleep(self.config.delay_ms / 1000)
        if self.config.fail_submission:
            raise GatewaySubmissionError("Simulated gateway rejection")

        submission = SimulatedSubmission(
            id=f"sim_doc_{uuid.uuid4().hex[:16]}",
            dispute_id=dispute_id,
            evidence=evidence,
            document_type=document_type,
        )
        self.submissions.append(submission)
        logger.info(f"Simulated defense submission {submission.id} for {dispute_id}")
        return {"id": submission.id, "chargeback_id": dispute_id, "status": "received"}
