"""Tests for the dispute-to-order resolver."""

from decimal import Decimal

import pytest

from chargeback_recon.connectors import SimulatorConfig, SimulatorOrderLookup
from chargeback_recon.models import MatchMethod, MatchResult
from chargeback_recon.reconciliation.resolver import (
    Resolver,
    match_stored_disputes,
    minor_to_major,
    within_tolerance,
)

from helpers import make_dispute, make_order


@pytest.fixture
def resolver():
    return Resolver(tolerance=Decimal("0.05"), timeout=1.0)


class TestTolerance:
    """Tests for the amount comparison helpers."""

    def test_minor_to_major(self):
        assert minor_to_major(15000) == Decimal("150")
        assert minor_to_major(None) is None

    def test_boundary_is_inclusive(self):
        assert within_tolerance(Decimal("105.00"), Decimal("100.00"), Decimal("0.05"))
        assert within_tolerance(Decimal("95.00"), Decimal("100.00"), Decimal("0.05"))

    def test_just_outside_rejected(self):
        assert not within_tolerance(Decimal("105.01"), Decimal("100.00"), Decimal("0.05"))
        assert not within_tolerance(Decimal("94.99"), Decimal("100.00"), Decimal("0.05"))

    def test_zero_amount_never_matches(self):
        assert not within_tolerance(Decimal("0"), Decimal("0"), Decimal("0.05"))


class TestResolve:
    """Tests for the automatic strategy chain."""

    async def test_metadata_takes_precedence_over_email(self, resolver):
        lookup = SimulatorOrderLookup([
            make_order("#1001", "149.00"),
            make_order("#2002", "999.00", email="other@x.com"),
        ])

        result = await resolver.resolve({"pedido": "2002"}, "a@x.com", 15000, lookup)

        assert result.method == MatchMethod.METADATA_ORDER_NUMBER
        assert result.order.display_name == "#2002"
        assert result.attempts == ["metadata order #2002 -> found"]
        assert ("email", "a@x.com") not in lookup.calls

    async def test_metadata_miss_falls_through_to_email(self, resolver, lookup):
        result = await resolver.resolve({"pedido": "9999"}, "a@x.com", 15000, lookup)

        assert result.method == MatchMethod.EMAIL_AMOUNT_MATCH
        assert result.attempts[0] == "metadata order #9999 -> not found"

    async def test_email_amount_match(self, resolver, lookup):
        result = await resolver.resolve({}, "a@x.com", 15000, lookup)

        assert result.method == MatchMethod.EMAIL_AMOUNT_MATCH
        assert result.order.display_name == "#1001"
        assert result.attempts == [
            "metadata -> no order number found",
            "email a@x.com -> 2 order(s) found",
            "email + amount 150.00 -> #1001 (total 149.00) within 5%",
        ]

    async def test_amount_exactly_at_tolerance_matches(self, resolver):
        lookup = SimulatorOrderLookup([make_order("#1", "105.00")])
        result = await resolver.resolve({}, "a@x.com", 10000, lookup)
        assert result.method == MatchMethod.EMAIL_AMOUNT_MATCH

    async def test_amount_past_tolerance_falls_back_to_first_order(self, resolver):
        lookup = SimulatorOrderLookup([
            make_order("#1", "105.01"),
            make_order("#2", "200.00"),
        ])

        result = await resolver.resolve({}, "a@x.com", 10000, lookup)

        assert result.method == MatchMethod.EMAIL_FIRST_ORDER
        assert result.order.display_name == "#1"
        assert "email + amount 100.00 -> no order within 5%" in result.attempts
        assert result.attempts[-1] == "email -> first order #1 (low confidence)"

    async def test_first_of_several_within_tolerance_wins(self, resolver):
        lookup = SimulatorOrderLookup([
            make_order("#1", "99.00"),
            make_order("#2", "100.00"),
        ])
        result = await resolver.resolve({}, "a@x.com", 10000, lookup)
        assert result.order.display_name == "#1"

    async def test_orders_without_total_are_not_amount_matched(self, resolver):
        lookup = SimulatorOrderLookup([make_order("#1", "0")])
        result = await resolver.resolve({}, "a@x.com", 10000, lookup)
        assert result.method == MatchMethod.EMAIL_FIRST_ORDER
        assert "email + amount 100.00 -> no order within 5%" in result.attempts

    async def test_unknown_amount_skips_amount_strategy(self, resolver, lookup):
        result = await resolver.resolve({}, "a@x.com", 0, lookup)

        assert result.method == MatchMethod.EMAIL_FIRST_ORDER
        assert "email + amount -> dispute amount unknown, skipped" in result.attempts

    async def test_email_is_case_insensitive(self, resolver, lookup):
        result = await resolver.resolve({}, "A@X.COM", 15000, lookup)
        assert result.matched

    async def test_zero_orders(self, resolver):
        lookup = SimulatorOrderLookup([])

        result = await resolver.resolve({}, "a@x.com", 15000, lookup)

        assert result.method == MatchMethod.NONE
        assert result.order is None
        assert result.attempts[-1] == "email a@x.com -> 0 orders found"

    @pytest.mark.parametrize("email", [None, "", "   "])
    async def test_no_email(self, resolver, lookup, email):
        result = await resolver.resolve({}, email, 15000, lookup)

        assert result.method == MatchMethod.NONE
        assert result.attempts == [
            "metadata -> no order number found",
            "email -> no customer email to search with",
        ]
        assert lookup.calls == []

    async def test_name_lookup_failure_continues_with_email(self, resolver, orders):
        lookup = SimulatorOrderLookup(orders, SimulatorConfig(fail_by_name=True))

        result = await resolver.resolve({"order_number": "1001"}, "a@x.com", 15000, lookup)

        assert result.method == MatchMethod.EMAIL_AMOUNT_MATCH
        assert result.attempts[0].startswith("metadata order #1001 -> lookup failed:")

    async def test_email_lookup_failure_yields_none(self, resolver, orders):
        lookup = SimulatorOrderLookup(orders, SimulatorConfig(fail_by_email=True))

        result = await resolver.resolve({}, "a@x.com", 15000, lookup)

        assert result.method == MatchMethod.NONE
        assert "Simulated lookup failure" in result.attempts[-1]

    async def test_timeout_is_a_failed_strategy(self, orders):
        resolver = Resolver(timeout=0.01)
        lookup = SimulatorOrderLookup(orders, SimulatorConfig(delay_ms=200))

        result = await resolver.resolve({}, "a@x.com", 15000, lookup)

        assert result.method == MatchMethod.NONE
        assert "timed out" in result.attempts[-1]

    async def test_attempts_never_empty(self, resolver, lookup):
        result = await resolver.resolve(None, None, None, lookup)
        assert result.attempts


class TestResolveManual:
    """Tests for the operator override."""

    @pytest.mark.parametrize("order_number", ["1002", "#1002", " 1002 "])
    async def test_found(self, resolver, lookup, order_number):
        result = await resolver.resolve_manual(order_number, lookup)

        assert result.method == MatchMethod.MANUAL
        assert result.order.display_name == "#1002"
        assert result.attempts == ["manual order #1002 -> found"]

    async def test_not_found(self, resolver, lookup):
        result = await resolver.resolve_manual("4040", lookup)

        assert result.method == MatchMethod.NONE
        assert result.attempts == ["manual order #4040 -> not found"]

    async def test_lookup_failure(self, resolver, orders):
        lookup = SimulatorOrderLookup(orders, SimulatorConfig(fail_by_name=True))
        result = await resolver.resolve_manual("1001", lookup)

        assert not result.matched
        assert "lookup failed" in result.attempts[0]


class TestMatchStoredDisputes:
    """Tests for selecting a stored dispute for a platform order event."""

    def test_newest_within_tolerance_wins(self):
        disputes = [
            make_dispute("old", minutes=0, amount_minor_units=15000),
            make_dispute("new", minutes=10, amount_minor_units=15000),
            make_dispute("far", minutes=20, amount_minor_units=90000),
        ]

        candidate = match_stored_disputes(disputes, "a@x.com", Decimal("149.00"))

        assert candidate.dispute.id == "new"
        assert candidate.amount_checked is True

    def test_email_is_case_insensitive(self):
        disputes = [make_dispute("cb_1", customer_email="Ana@X.com")]
        candidate = match_stored_disputes(disputes, "ana@x.COM", Decimal("150.00"))
        assert candidate.dispute.id == "cb_1"

    def test_unknown_total_skips_amount_test(self):
        disputes = [make_dispute("cb_1")]

        candidate = match_stored_disputes(disputes, "a@x.com", None)

        assert candidate.dispute.id == "cb_1"
        assert candidate.amount_checked is False

    def test_zero_dispute_amount_skips_amount_test(self):
        disputes = [make_dispute("cb_1", amount_minor_units=0)]
        candidate = match_stored_disputes(disputes, "a@x.com", Decimal("10.00"))
        assert candidate.dispute.id == "cb_1"
        assert candidate.amount_checked is False

    def test_no_dispute_within_tolerance(self):
        disputes = [make_dispute("cb_1", amount_minor_units=15000)]

        candidate = match_stored_disputes(disputes, "a@x.com", Decimal("300.00"))

        assert candidate.dispute is None
        assert candidate.amount_checked is True

    def test_other_email_never_matches(self):
        disputes = [make_dispute("cb_1")]
        assert match_stored_disputes(disputes, "b@x.com", Decimal("150.00")).dispute is None

    def test_event_without_email(self):
        candidate = match_stored_disputes([make_dispute("cb_1")], None, Decimal("150.00"))
        assert candidate.dispute is None
        assert candidate.attempts == ["email -> order event has no email"]

    def test_dispute_matched_to_the_order_wins(self):
        matched = MatchResult(order=make_order("#1001", "149.00"), method=MatchMethod.MANUAL)
        disputes = [
            make_dispute("cb_old", minutes=0, match=matched),
            make_dispute("cb_new", minutes=10),
        ]

        candidate = match_stored_disputes(disputes, "a@x.com", Decimal("149.00"), order_name="1001")

        assert candidate.dispute.id == "cb_old"
        assert candidate.attempts[-1] == "order #1001 -> dispute cb_old already matched to it"

    def test_unmatched_dispute_preferred_over_other_order(self):
        matched = MatchResult(order=make_order("#1001", "149.00"), method=MatchMethod.MANUAL)
        disputes = [
            make_dispute("cb_old", minutes=0),
            make_dispute("cb_new", minutes=10, match=matched),
        ]

        candidate = match_stored_disputes(disputes, "a@x.com", Decimal("149.00"), order_name="#2002")

        assert candidate.dispute.id == "cb_old"

    def test_only_other_order_still_returned(self):
        matched = MatchResult(order=make_order("#1001", "149.00"), method=MatchMethod.MANUAL)
        disputes = [make_dispute("cb_1", match=matched)]

        candidate = match_stored_disputes(disputes, "a@x.com", Decimal("149.00"), order_name="#2002")

        assert candidate.dispute.id == "cb_1"
