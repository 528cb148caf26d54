#!/usr/bin/env python3
"""
Force a user's subscription tier.

Writes both the subscriptions and users records through the same
transactional writer the webhook uses. Intended for support fixes when a
user paid but the tier never updated and /subscription/sync cannot help
(e.g. the Stripe customer uses a different email).

Usage:
    # Dry run (shows what would be written)
    python scripts/set_user_tier.py user_abc123 pro --dry-run

    # Downgrade to free
    python scripts/set_user_tier.py user_abc123 free

    # Upgrade and link the Stripe subscription
    python scripts/set_user_tier.py user_abc123 team --subscription-id sub_123
"""

import argparse
import os
import sys

# Add functions directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../functions"))

from shared.constants import TIERS  # noqa: E402
from shared.errors import StateWriteError  # noqa: E402
from shared.subscription_store import get_subscription_state, write_subscription_state  # noqa: E402


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Set a user's subscription tier")
    parser.add_argument("user_id", help="Internal user id")
    parser.add_argument("tier", choices=TIERS, help="Tier to store")
    parser.add_argument("--status", help="Status label (default: active for paid tiers, manual_downgrade for free)")
    parser.add_argument("--subscription-id", help="Stripe subscription id to link")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be written without making changes")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    status = args.status or ("manual_downgrade" if args.tier == "free" else "active")
    subscription_id = None if args.tier == "free" else args.subscription_id

    current = get_subscription_state(args.user_id)
    if current:
        print(f"Current: tier={current.get('tier')} status={current.get('status')} "
              f"subscription={current.get('stripe_subscription_id', '-')}")
    else:
        print(f"No subscription record for {args.user_id}")

    print(f"New:     tier={args.tier} status={status} subscription={subscription_id or '-'}")

    if args.dry_run:
        print("=== DRY RUN MODE - No changes made ===")
        return 0

    try:
        write_subscription_state(args.user_id, args.tier, status, subscription_id)
    except StateWriteError as e:
        print(f"Error writing subscription state: {e.details.get('error')}")
        return 1

    print("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
