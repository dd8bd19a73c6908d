"""Service layer for reconciliation operations."""

import logging
from typing import List, Optional

from ..connectors.base import OrderLookupClient
from ..drafts import apply_order, build_draft_defense
from ..models import DisputeEvent, MatchMethod, MatchResult
from ..store import EventStore, DisputeNotFoundError
from .models import UnifiedDisputeView, UnifiedDisputeList
from .resolver import Resolver

logger = logging.getLogger(__name__)


class OrderLookupUnavailableError(RuntimeError):
    """No order lookup collaborator is configured."""


class OrderNotFoundError(LookupError):
    """A manual match named an order that could not be found."""

    def __init__(self, order_number: str, attempts: List[str]):
        self.order_number = order_number
        self.attempts = attempts
        super().__init__(f"Order not found: {order_number}")


def apply_match(dispute: DisputeEvent, result: MatchResult) -> DisputeEvent:
    """Merge a match result into a dispute, touching only match-owned fields."""
    dispute.match = result
    if result.order is not None:
        if dispute.draft_defense is None:
            dispute.draft_defense = build_draft_defense(dispute)
        apply_order(dispute.draft_defense, result.order)
    return dispute


class ReconciliationService:
    """Runs the resolver against stored disputes and persists the outcome."""

    def __init__(
        self,
        store: EventStore,
        lookup: Optional[OrderLookupClient] = None,
        resolver: Optional[Resolver] = None,
    ):
        """Initialize the reconciliation service.

        Args:
            store: Dispute event store.
            lookup: Order lookup collaborator; operations that need it raise
                OrderLookupUnavailableError when it is None.
            resolver: Resolver instance. Defaults to 5% tolerance.
        """
        self.store = store
        self.lookup = lookup
        self.resolver = resolver or Resolver()

    def _require_lookup(self) -> OrderLookupClient:
        if self.lookup is None:
            raise OrderLookupUnavailableError("No order lookup client is configured")
        return self.lookup

    async def _get(self, dispute_id: str) -> DisputeEvent:
        dispute = await self.store.get(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return dispute

    async def reconcile(self, dispute_id: str) -> DisputeEvent:
        """Run the automatic chain for one dispute and store the result.

        A manual match already on the record is never replaced by the
        automatic chain.
        """
        lookup = self._require_lookup()
        dispute = await self._get(dispute_id)
        result = await self.resolver.resolve(
            metadata=dispute.metadata,
            customer_email=dispute.customer_email,
            amount_minor_units=dispute.amount_minor_units,
            lookup=lookup,
        )

        def mutate(current: DisputeEvent) -> DisputeEvent:
            if current.match is not None and current.match.method == MatchMethod.MANUAL:
                return current
            return apply_match(current, result)

        stored = await self.store.update(dispute_id, mutate)
        logger.info(
            f"Reconciled dispute {dispute_id}: method={result.method.value} "
            f"order={result.order.display_name if result.order else None}"
        )
        return stored

    async def manual_match(self, dispute_id: str, order_number: str) -> DisputeEvent:
        """Operator override by order number.

        Raises:
            DisputeNotFoundError: Unknown dispute.
            OrderNotFoundError: The order could not be found; nothing is stored.
        """
        lookup = self._require_lookup()
        await self._get(dispute_id)
        result = await self.resolver.resolve_manual(order_number, lookup)
        if not result.matched:
            raise OrderNotFoundError(order_number, result.attempts)

        stored = await self.store.update(dispute_id, lambda d: apply_match(d, result))
        logger.info(f"Manually matched dispute {dispute_id} to {result.order.display_name}")
        return stored

    async def list_disputes(self) -> List[DisputeEvent]:
        return await self.store.get_all()

    async def get_dispute(self, dispute_id: str) -> DisputeEvent:
        return await self._get(dispute_id)

    async def unified_view(self, dispute_id: str) -> UnifiedDisputeView:
        return UnifiedDisputeView.from_dispute(await self._get(dispute_id))

    async def unified_views(self, refresh: bool = False) -> UnifiedDisputeList:
        """Unified view of every stored dispute.

        Args:
            refresh: Re-run the automatic chain for disputes without a match
                first. Ignored when no lookup client is configured.
        """
        disputes = await self.store.get_all()

        if refresh and self.lookup is not None:
            refreshed = []
            for dispute in disputes:
                if dispute.match is None or not dispute.match.matched:
                    try:
                        dispute = await self.reconcile(dispute.id)
                    except DisputeNotFoundError:
                        # Evicted while refreshing.
                        continue
                refreshed.append(dispute)
            disputes = refreshed

        views = [UnifiedDisputeView.from_dispute(d) for d in disputes]
        matched = sum(1 for v in views if v.order is not None)
        return UnifiedDisputeList(
            total=len(views),
            matched=matched,
            unmatched=len(views) - matched,
            lookup_configured=self.lookup is not None,
            disputes=views,
        )
