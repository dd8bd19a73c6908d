#!/usr/bin/env python3
"""Command-line interface for dispute reconciliation.

Operates directly on the configured event store and order lookup client.

Usage:
    chargeback-recon list
    chargeback-recon show cb_123 --format text
    chargeback-recon reconcile cb_123
    chargeback-recon match cb_123 "#1234"
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from ..config import Settings, get_settings
from ..connectors import OrderLookupClient, build_order_lookup
from ..store import DisputeNotFoundError, EventStore, create_event_store
from .models import UnifiedDisputeView
from .resolver import Resolver
from .service import ReconciliationService, OrderLookupUnavailableError, OrderNotFoundError

logger = logging.getLogger(__name__)


def format_view(view: UnifiedDisputeView) -> str:
    """Plain-text rendering of one unified dispute."""
    dispute = view.dispute
    lines = [
        f"Dispute {dispute.id} [{dispute.status.value}]",
        f"  Amount:   {dispute.amount:.2f} {dispute.currency}",
        f"  Customer: {dispute.customer_name or '-'} <{dispute.customer_email or '-'}>",
        f"  Reason:   {dispute.reason_code or '-'}",
        f"  Created:  {dispute.created_at.isoformat()}",
        f"  Match:    {view.method_label}",
    ]
    if view.order is not None:
        total = f"{view.order.total_amount:.2f}" if view.order.total_amount is not None else "-"
        lines.append(f"  Order:    {view.order.display_name} (total {total})")
    if view.tracking is not None:
        lines.append(
            f"  Tracking: {view.tracking.number or '-'} via {view.tracking.carrier or '-'}"
        )
    if view.attempts:
        lines.append("  Attempts:")
        lines.extend(f"    - {attempt}" for attempt in view.attempts)
    if view.processing_errors:
        lines.append("  Errors:")
        lines.extend(f"    - {error}" for error in view.processing_errors)
    return "\n".join(lines)


def render(views: List[UnifiedDisputeView], output_format: str) -> str:
    if output_format == "json":
        return json.dumps([v.model_dump(mode="json") for v in views], indent=2)
    if not views:
        return "No disputes stored."
    return "\n\n".join(format_view(v) for v in views)


async def run_command(
    args: argparse.Namespace,
    settings: Settings,
    store: Optional[EventStore] = None,
    lookup: Optional[OrderLookupClient] = None,
) -> int:
    """Execute a parsed command.

    Args:
        args: Parsed command-line arguments.
        settings: Settings used to build the store and lookup client.
        store: Event store; built from settings when None.
        lookup: Order lookup client; built from settings when None.

    Returns:
        Exit code (0 success, 1 not found or unmatched, 2 configuration error).
    """
    store = store or create_event_store(
        args.store or settings.event_store_path,
        capacity=settings.event_store_capacity,
    )
    owns_lookup = lookup is None
    lookup = lookup or build_order_lookup(settings)
    service = ReconciliationService(
        store=store,
        lookup=lookup,
        resolver=Resolver(settings.match_amount_tolerance, settings.order_lookup_timeout),
    )

    try:
        if args.command == "list":
            views = (await service.unified_views()).disputes
            print(render(views, args.format))
            return 0

        if args.command == "show":
            view = await service.unified_view(args.dispute_id)
            print(render([view], args.format))
            return 0

        if args.command == "reconcile":
            dispute = await service.reconcile(args.dispute_id)
        else:
            dispute = await service.manual_match(args.dispute_id, args.order_number)

        view = UnifiedDisputeView.from_dispute(dispute)
        print(render([view], args.format))
        return 0 if view.order is not None else 1

    except DisputeNotFoundError as e:
        logger.error(str(e))
        return 1
    except OrderNotFoundError as e:
        logger.error(f"{e}: {'; '.join(e.attempts)}")
        return 1
    except OrderLookupUnavailableError as e:
        logger.error(f"{e}. Set SHOPIFY_STORE_DOMAIN and SHOPIFY_ACCESS_TOKEN.")
        return 2
    finally:
        if owns_lookup and lookup is not None:
            await lookup.aclose()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="chargeback-recon",
        description="Inspect stored disputes and match them to orders.",
    )
    parser.add_argument(
        "--store",
        help="Event store JSON file (default: EVENT_STORE_PATH)",
    )
    parser.add_argument(
        "--format", "-f",
        choices=["json", "text"],
        default="text",
        help="Output format (default: text)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List stored disputes, newest first")

    show_parser = subparsers.add_parser("show", help="Show one dispute with its match trail")
    show_parser.add_argument("dispute_id")

    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Run automatic matching for a dispute",
    )
    reconcile_parser.add_argument("dispute_id")

    match_parser = subparsers.add_parser(
        "match",
        help="Match a dispute to an order number",
    )
    match_parser.add_argument("dispute_id")
    match_parser.add_argument("order_number", help="Order number, e.g. '#1234' or '1234'")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    return asyncio.run(run_command(parsed_args, get_settings()))


if __name__ == "__main__":
    sys.exit(main())
