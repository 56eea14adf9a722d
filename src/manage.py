"""Storefront management CLI.

Schema setup for SQL providers plus the housekeeping jobs an external
scheduler runs against the storefront.

Usage:
    python src/manage.py setup-db                     # Create all tables
    python src/manage.py drop-db                      # Drop all tables
    python src/manage.py expire-checkouts --grace 60  # Abandon lapsed checkout locks
    python src/manage.py purge-carts                  # Delete carts past their TTL
    python src/manage.py set-shipping --free-threshold 999 --flat 99
"""

import argparse
import sys


def _domain():
    from storefront.domain import storefront

    storefront.init()
    return storefront


def setup_database():
    from storefront.utils.db import setup_db

    domain = _domain()
    print("Creating storefront database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from storefront.utils.db import drop_db

    domain = _domain()
    print("Dropping storefront database schema...")
    drop_db(domain)
    print("Done.")


def expire_checkouts(grace_minutes=None):
    from storefront.cart.expiry import ExpireCheckouts

    domain = _domain()
    with domain.domain_context():
        abandoned = domain.process(ExpireCheckouts(grace_minutes=grace_minutes), asynchronous=False)
    print(f"Abandoned {abandoned} lapsed checkout(s).")


def purge_carts():
    from storefront.cart.expiry import PurgeExpiredCarts

    domain = _domain()
    with domain.domain_context():
        purged = domain.process(PurgeExpiredCarts(), asynchronous=False)
    print(f"Purged {purged} expired cart(s).")


def set_shipping(free_threshold=None, flat_rate=None):
    from storefront.settings.shipping import ConfigureShipping

    domain = _domain()
    with domain.domain_context():
        domain.process(ConfigureShipping(free_threshold=free_threshold, flat_rate=flat_rate), asynchronous=False)
    print("Shipping settings saved.")


def main():
    parser = argparse.ArgumentParser(description="Storefront management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    expire_parser = subparsers.add_parser("expire-checkouts", help="Abandon checkout locks that lapsed long ago")
    expire_parser.add_argument(
        "--grace",
        type=int,
        default=None,
        help="Minutes past expiry before a lock is abandoned (default: CHECKOUT_ABANDON_GRACE_MINUTES)",
    )

    subparsers.add_parser("purge-carts", help="Delete carts whose TTL has passed")

    shipping_parser = subparsers.add_parser("set-shipping", help="Store the shipping rule")
    shipping_parser.add_argument("--free-threshold", type=float, default=None)
    shipping_parser.add_argument("--flat", type=float, default=None)

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "expire-checkouts":
        expire_checkouts(args.grace)
    elif args.command == "purge-carts":
        purge_carts()
    elif args.command == "set-shipping":
        set_shipping(args.free_threshold, args.flat)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
