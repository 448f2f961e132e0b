"""
Reprise des virements de commission en attente, à lancer par cron:

    python -m marketplace.orders.jobs [--limit 100]

Code de sortie 1 si au moins un virement a encore échoué.
"""
import argparse
import logging
import sys

from marketplace.infra.supabase_client import open_clients, close_clients
from marketplace.payments.stripe_client import configure_stripe
from marketplace.orders.service import retry_pending_fee_transfers


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Rejoue les virements de commission plateforme en attente")
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    configure_stripe()
    db = open_clients()
    try:
        summary = retry_pending_fee_transfers(db, limit=args.limit)
    finally:
        close_clients()
    print(f"pending={summary['pending']} transferred={len(summary['transferred'])} failed={len(summary['failed'])}")
    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
