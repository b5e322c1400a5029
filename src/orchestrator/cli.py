"""
PRREVIEW Maintenance CLI
========================

Command-line interface for store maintenance.

Commands:
    rebuild          - Recompute every product's average_rating
    remove-customer  - Delete a customer and cascade their reviews
    health           - Check fact store health

Usage:
    python -m src.orchestrator.cli rebuild
    python -m src.orchestrator.cli remove-customer --customer-id 42
    python -m src.orchestrator.cli health --json
"""

import argparse
import json
import logging
import sys

from ..api import db
from ..data.errors import ReviewEngineError
from ..reviews.service import ReviewService
from .logging_config import setup_logging_from_settings


def cmd_rebuild(args):
    """Recompute all aggregates."""
    print("=" * 60)
    print("PRREVIEW AGGREGATE REBUILD")
    print("=" * 60)

    try:
        service = ReviewService(db.get_store())
        repaired = service.rebuild_aggregates()
        print(f"Products repaired: {repaired}")
        return 0

    except ReviewEngineError as e:
        print(f"\nERROR: Rebuild failed: {e}")
        logging.exception("Rebuild failed")
        return 1
    finally:
        db.close_store()


def cmd_remove_customer(args):
    """Delete a customer with the review cascade."""
    try:
        service = ReviewService(db.get_store())
        result = service.remove_customer(args.customer_id)

        print("=" * 60)
        print(f"CUSTOMER REMOVED: {result.customer_id}")
        print("=" * 60)
        print(f"Reviews deleted: {result.reviews_deleted}")
        print(f"Ratings detached: {result.ratings_detached}")
        print(f"Passes: {result.passes}")
        print()
        print("Updated averages:")
        for product_id in result.products_affected:
            print(f"  product {product_id}: {result.aggregates[product_id]}")

        if args.json:
            print()
            print(json.dumps({
                "customer_id": result.customer_id,
                "reviews_deleted": result.reviews_deleted,
                "ratings_detached": result.ratings_detached,
                "average_ratings": result.aggregates,
            }, indent=2, default=str))

        return 0

    except ReviewEngineError as e:
        print(f"ERROR: Failed to remove customer {args.customer_id}: {e}")
        if e.retryable:
            print("The operation can be retried.")
        return 1
    finally:
        db.close_store()


def cmd_health(args):
    """Check store health."""
    health = db.check_health()
    healthy = health.get("status") == "connected"

    print("=" * 60)
    print("FACT STORE HEALTH CHECK")
    print("=" * 60)
    print(f"Status: {'HEALTHY' if healthy else 'UNHEALTHY'}")
    print(f"Backend: {health.get('backend', 'unknown')}")
    if health.get("error"):
        print(f"Error: {health['error']}")

    if args.json:
        print()
        print(json.dumps(health, indent=2, default=str))

    db.close_store()
    return 0 if healthy else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prreview",
        description="PRREVIEW maintenance CLI",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("rebuild", help="Recompute every product's average_rating")

    remove_parser = subparsers.add_parser("remove-customer", help="Delete a customer and their reviews")
    remove_parser.add_argument(
        "--customer-id",
        type=int,
        required=True,
        help="Customer to delete",
    )
    remove_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    health_parser = subparsers.add_parser("health", help="Check fact store health")
    health_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging_from_settings(args.verbose)

    if args.command is None:
        parser.print_help()
        return 1

    commands = {
        "rebuild": cmd_rebuild,
        "remove-customer": cmd_remove_customer,
        "health": cmd_health,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
