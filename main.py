"""CLI entry point for the marketplace dispute service."""

import argparse
import json
import sys
from pathlib import Path

from dispute_resolution.config import settings
from dispute_resolution.data.seed import seed_data, reset_data
from dispute_resolution.data.storage import Storage
from dispute_resolution.disputes.service import DisputeService
from dispute_resolution.errors import DisputeError
from dispute_resolution.models.user import Actor


def ensure_data_exists():
    """Ensure sample data files exist, seeding if necessary."""
    storage = Storage()
    if not storage.get_users() or not storage.get_references("order"):
        print("Initializing sample data...")
        seed_data()
        print()


def print_disputes(service: DisputeService, actor: Actor):
    disputes = service.list_disputes(actor)
    if not disputes:
        print("No disputes on file.")
        return
    print(f"{len(disputes)} dispute(s):")
    for d in disputes:
        outcome = f" | {d.resolution_outcome}" if d.resolution_outcome else ""
        pending = " | settlement pending" if d.pending_resolution else ""
        print(
            f"  - {d.id[:8]}... | {d.reference_kind}:{d.reference_id} | {d.category} "
            f"| {d.stage}{outcome}{pending}"
        )


def print_dispute(service: DisputeService, actor: Actor, dispute_id: str):
    details = service.get_by_id(actor, dispute_id)
    print(json.dumps(details.model_dump(mode="json"), indent=2))


def print_stats(service: DisputeService, actor: Actor):
    stats = service.get_stats(actor)
    print(json.dumps(stats.model_dump(), indent=2))


def run_sweep(service: DisputeService):
    settled = service.retry_pending_settlements()
    if settled:
        print(f"Completed {len(settled)} pending settlement(s):")
        for d in settled:
            print(f"  - {d.id[:8]}... | {d.reference_kind}:{d.reference_id} | {d.resolution_outcome}")

    escalated = service.escalate_expired()
    if not escalated:
        print("No negotiations past their deadline.")
        return
    print(f"Escalated {len(escalated)} dispute(s) to admin review:")
    for d in escalated:
        print(f"  - {d.id[:8]}... | {d.reference_kind}:{d.reference_id}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Marketplace Dispute Resolution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --seed                       # Seed sample data and exit
  python main.py --reset                      # Clear disputes and reseed
  python main.py --sweep                      # Retry stuck settlements, escalate expired negotiations
  python main.py --list --user user_002       # List disputes of a user
  python main.py --list --arbiter             # List every dispute
  python main.py --show <dispute-id>          # Show one dispute
  python main.py --stats --arbiter            # Dispute statistics
        """,
    )

    parser.add_argument(
        "--user",
        type=str,
        default=settings.default_user_id,
        help=f"User ID for the session (default: {settings.default_user_id})",
    )

    parser.add_argument(
        "--arbiter",
        action="store_true",
        help="Act as an arbiter instead of a transaction party",
    )

    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete disputes, settlements and ledger entries, then reseed",
    )

    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed sample data and exit",
    )

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "--sweep",
        dest="action",
        action="store_const",
        const="sweep",
        help="Retry pending settlements and escalate negotiations past their deadline",
    )

    actions.add_argument(
        "--list",
        dest="action",
        action="store_const",
        const="list",
        help="List disputes visible to the user (default)",
    )

    actions.add_argument(
        "--stats",
        dest="action",
        action="store_const",
        const="stats",
        help="Show dispute statistics (arbiters only)",
    )

    actions.add_argument(
        "--show",
        type=str,
        metavar="DISPUTE_ID",
        default=None,
        help="Show one dispute with its parties",
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Custom data directory path",
    )

    parser.set_defaults(action="list")
    args = parser.parse_args()

    # Handle data directory override
    if args.data_dir:
        settings.data_dir = args.data_dir

    if args.reset:
        print("Resetting all data to defaults...")
        reset_data(args.data_dir)
        print("Done!")
        return

    if args.seed:
        print("Seeding sample data...")
        seed_data(args.data_dir)
        print("Done!")
        return

    ensure_data_exists()

    service = DisputeService()
    actor = Actor(user_id=args.user, role="arbiter" if args.arbiter else "user")

    try:
        if args.show:
            print_dispute(service, actor, args.show)
        elif args.action == "sweep":
            run_sweep(service)
        elif args.action == "stats":
            print_stats(service, actor)
        elif args.action == "list":
            print_disputes(service, actor)
    except DisputeError as e:
        print(f"\nError: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
