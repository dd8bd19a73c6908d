"""Multi-strategy dispute-to-order resolver.

Strategies run in fixed priority order and stop at the first hit:

1. metadata order number -> exact lookup by name
2. customer email -> orders by email, preferring one within the amount
   tolerance, else the first returned order (low confidence)
3. nothing to search with / nothing found -> method ``none``

Every branch writes a line to ``MatchResult.attempts``. Lookup errors and
timeouts are recorded there and treated as that strategy failing.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Awaitable, List, Mapping, Optional, Sequence, TypeVar

from ..connectors.base import OrderLookupClient, normalize_order_name
from ..models import DisputeEvent, MatchMethod, MatchResult, MetadataValue, OrderRecord
from .metadata import extract_order_number

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = Decimal("0.05")

T = TypeVar("T")


def minor_to_major(amount_minor_units: Optional[int]) -> Optional[Decimal]:
    """Convert minor units (cents) to a Decimal in major units."""
    if amount_minor_units is None:
        return None
    return Decimal(amount_minor_units) / 100


def within_tolerance(total: Decimal, amount: Decimal, tolerance: Decimal) -> bool:
    """True when ``total`` deviates from ``amount`` by at most ``tolerance`` (relative).

    The boundary is inclusive: exactly 5.00% off passes at tolerance 0.05.
    """
    if amount <= 0:
        return False
    return abs(total - amount) <= amount * tolerance


def _percent(tolerance: Decimal) -> str:
    return f"{(tolerance * 100).normalize():f}%"


class _LookupFailed(Exception):
    pass


class Resolver:
    """Matches a dispute to an order through an ``OrderLookupClient``."""

    def __init__(self, tolerance: Decimal = DEFAULT_TOLERANCE, timeout: float = 10.0):
        self.tolerance = Decimal(tolerance)
        self.timeout = timeout

    async def _call(self, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise _LookupFailed(f"timed out after {self.timeout:g}s") from e
        except Exception as e:
            raise _LookupFailed(str(e) or e.__class__.__name__) from e

    async def resolve(
        self,
        metadata: Optional[Mapping[str, MetadataValue]],
        customer_email: Optional[str],
        amount_minor_units: Optional[int],
        lookup: OrderLookupClient,
    ) -> MatchResult:
        """Run the automatic strategy chain.

        Args:
            metadata: Merchant metadata attached to the transaction.
            customer_email: Cardholder email, if the gateway sent one.
            amount_minor_units: Disputed amount in minor units; 0/None is unknown.
            lookup: Order lookup collaborator.

        Returns:
            A MatchResult whose ``attempts`` trail is never empty.
        """
        attempts: List[str] = []

        order_number = extract_order_number(metadata)
        if order_number is None:
            attempts.append("metadata -> no order number found")
        else:
            name = normalize_order_name(order_number)
            try:
                order = await self._call(lookup.get_order_by_name(name))
            except _LookupFailed as e:
                attempts.append(f"metadata order {name} -> lookup failed: {e}")
                logger.warning(f"Order lookup by name {name} failed: {e}")
            else:
                if order is not None:
                    attempts.append(f"metadata order {name} -> found")
                    return MatchResult(
                        order=order,
                        method=MatchMethod.METADATA_ORDER_NUMBER,
                        attempts=attempts,
                    )
                attempts.append(f"metadata order {name} -> not found")

        email = (customer_email or "").strip()
        if not email:
            attempts.append("email -> no customer email to search with")
            return MatchResult(method=MatchMethod.NONE, attempts=attempts)

        try:
            orders = await self._call(lookup.get_orders_by_email(email))
        except _LookupFailed as e:
            attempts.append(f"email {email} -> lookup failed: {e}")
            logger.warning(f"Order lookup by email failed: {e}")
            return MatchResult(method=MatchMethod.NONE, attempts=attempts)

        if not orders:
            attempts.append(f"email {email} -> 0 orders found")
            return MatchResult(method=MatchMethod.NONE, attempts=attempts)
        attempts.append(f"email {email} -> {len(orders)} order(s) found")

        amount = minor_to_major(amount_minor_units)
        if amount is not None and amount > 0:
            order = self.pick_by_amount(orders, amount)
            if order is not None:
                attempts.append(
                    f"email + amount {amount:.2f} -> {order.display_name} "
                    f"(total {order.total_amount:.2f}) within {_percent(self.tolerance)}"
                )
                return MatchResult(
                    order=order,
                    method=MatchMethod.EMAIL_AMOUNT_MATCH,
                    attempts=attempts,
                )
            attempts.append(
                f"email + amount {amount:.2f} -> no order within {_percent(self.tolerance)}"
            )
        else:
            attempts.append("email + amount -> dispute amount unknown, skipped")

        first = orders[0]
        attempts.append(f"email -> first order {first.display_name} (low confidence)")
        return MatchResult(
            order=first,
            method=MatchMethod.EMAIL_FIRST_ORDER,
            attempts=attempts,
        )

    def pick_by_amount(
        self,
        orders: Sequence[OrderRecord],
        amount: Decimal,
    ) -> Optional[OrderRecord]:
        """First order (in API return order) whose total is within tolerance.

        Orders without a positive total never match on amount.
        """
        for order in orders:
            total = order.total_amount
            if total is None or total <= 0:
                continue
            if within_tolerance(total, amount, self.tolerance):
                return order
        return None

    async def resolve_manual(
        self,
        order_number: str,
        lookup: OrderLookupClient,
    ) -> MatchResult:
        """Operator override: exact lookup of ``order_number``, method ``manual``."""
        name = normalize_order_name(order_number)
        try:
            order = await self._call(lookup.get_order_by_name(name))
        except _LookupFailed as e:
            logger.warning(f"Manual order lookup {name} failed: {e}")
            return MatchResult(
                method=MatchMethod.NONE,
                attempts=[f"manual order {name} -> lookup failed: {e}"],
            )
        if order is None:
            return MatchResult(
                method=MatchMethod.NONE,
                attempts=[f"manual order {name} -> not found"],
            )
        return MatchResult(
            order=order,
            method=MatchMethod.MANUAL,
            attempts=[f"manual order {name} -> found"],
        )


@dataclass
class CandidateMatch:
    """A stored dispute selected for a platform order event."""
    dispute: Optional[DisputeEvent]
    amount_checked: bool = False
    attempts: List[str] = field(default_factory=list)


def _matched_order_name(dispute: DisputeEvent) -> Optional[str]:
    if dispute.match is None or dispute.match.order is None:
        return None
    return dispute.match.order.display_name


def match_stored_disputes(
    disputes: Sequence[DisputeEvent],
    email: Optional[str],
    order_total: Optional[Decimal],
    tolerance: Decimal = DEFAULT_TOLERANCE,
    order_name: Optional[str] = None,
) -> CandidateMatch:
    """Pick the stored dispute an incoming order event belongs to.

    Candidates share the customer email (case-insensitive). A candidate
    already matched to ``order_name`` is taken first. Otherwise, when both
    the dispute amount and the order total are positive the amount tolerance
    applies, else the amount test is skipped, and unmatched candidates are
    preferred over ones matched to a different order. The most recently
    created candidate wins.
    """
    wanted = (email or "").strip().lower()
    if not wanted:
        return CandidateMatch(dispute=None, attempts=["email -> order event has no email"])

    same_email = [
        d for d in disputes
        if (d.customer_email or "").strip().lower() == wanted
    ]
    attempts = [f"email {wanted} -> {len(same_email)} stored dispute(s)"]

    name = normalize_order_name(order_name) if order_name else None
    if name is not None:
        same_order = [d for d in same_email if _matched_order_name(d) == name]
        if same_order:
            chosen = max(same_order, key=lambda d: d.created_at)
            attempts.append(f"order {name} -> dispute {chosen.id} already matched to it")
            return CandidateMatch(dispute=chosen, amount_checked=True, attempts=attempts)

    total = order_total if order_total is not None else Decimal("0")

    candidates = []
    amount_checked = False
    for dispute in same_email:
        if dispute.amount <= 0 or total <= 0:
            candidates.append(dispute)
            continue
        amount_checked = True
        if within_tolerance(total, dispute.amount, tolerance):
            candidates.append(dispute)

    if name is not None:
        # Disputes already matched to another order are a last resort.
        unclaimed = [d for d in candidates if _matched_order_name(d) is None]
        if unclaimed:
            candidates = unclaimed

    if not candidates:
        if same_email:
            attempts.append(
                f"email + amount {total:.2f} -> no stored dispute within {_percent(tolerance)}"
            )
        return CandidateMatch(dispute=None, amount_checked=amount_checked, attempts=attempts)

    chosen = max(candidates, key=lambda d: d.created_at)
    checked = chosen.amount > 0 and total > 0
    if checked:
        attempts.append(
            f"email + amount {total:.2f} -> dispute {chosen.id} "
            f"(amount {chosen.amount:.2f}) within {_percent(tolerance)}"
        )
    else:
        attempts.append(f"email -> dispute {chosen.id}, amount not compared")
    return CandidateMatch(dispute=chosen, amount_checked=checked, attempts=attempts)
