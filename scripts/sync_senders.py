#!/usr/bin/env python3
"""
Synchronize per-sender statistics for one mailbox into the local database.

The first run performs a full inbox pull; later runs apply only the changes
since the stored cursor.

Usage:
    python scripts/sync_senders.py --provider gmail --account me@gmail.com
    python scripts/sync_senders.py --provider outlook --account me@contoso.com --full
    python scripts/sync_senders.py --provider gmail --account me@gmail.com --top 20
"""

import argparse
import asyncio
import sys
from pathlib import Path

import httpx

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.collectors import SenderCollector
from src.database import Database, RepositoryStore
from src.providers import ProviderError, ProviderType, client_from_config
from src.utils import Config, configure_logging, setup_logger


async def run(args, config: Config, logger) -> int:
    db = Database(args.db_path or config.DATABASE_PATH)
    db.create_tables()
    store = RepositoryStore(db)

    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS) as http:
        user_id = args.account if args.provider == ProviderType.OUTLOOK.value else None
        client = client_from_config(config, args.provider, http, user_id=user_id)
        collector = SenderCollector(client, store, args.account)

        if args.full:
            summary = await collector.full_sync(max_messages=args.max)
        else:
            summary = await collector.sync(max_messages=args.max)

        logger.info(
            f"{summary.mode} sync: {summary.added} messages, {summary.removed} removed, "
            f"{summary.failed} failed, {summary.senders} senders"
        )
        logger.info(f"Request retries: {client.requester.get_stats()}")

    if args.top:
        logger.info(f"\nTop {args.top} senders:")
        for stats in store.get_senders(args.account)[:args.top]:
            flags = []
            if stats.is_newsletter:
                flags.append('newsletter')
            if stats.one_click:
                flags.append('one-click')
            logger.info(
                f"  {stats.count:5d}  {stats.name} <{stats.email}>"
                f"{' [' + ', '.join(flags) + ']' if flags else ''}"
            )

    return 0


def main():
    """Sync sender statistics."""
    parser = argparse.ArgumentParser(description='Synchronize sender statistics for a mailbox')
    parser.add_argument(
        '--provider',
        choices=[p.value for p in ProviderType],
        required=True,
        help='Mailbox provider'
    )
    parser.add_argument(
        '--account',
        required=True,
        help='Mailbox address (also the Graph user for Outlook)'
    )
    parser.add_argument(
        '--full',
        action='store_true',
        help='Force a full sync even if a cursor is stored'
    )
    parser.add_argument(
        '--max',
        type=int,
        default=None,
        help='Maximum number of messages for a full sync (default: unlimited)'
    )
    parser.add_argument(
        '--top',
        type=int,
        default=0,
        help='Print the N largest senders after syncing'
    )
    parser.add_argument(
        '--db-path',
        type=str,
        default=None,
        help='Path to database file (default: DATABASE_PATH)'
    )
    args = parser.parse_args()

    config = Config.load()
    config.validate()
    configure_logging(config.LOG_LEVEL, config.LOG_DIR)
    logger = setup_logger('sync_senders')

    try:
        sys.exit(asyncio.run(run(args, config, logger)))
    except KeyboardInterrupt:
        logger.warning("Sync interrupted; data stored so far is kept")
        sys.exit(1)
    except (ProviderError, ValueError, FileNotFoundError) as e:
        logger.error(f"Sync failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
