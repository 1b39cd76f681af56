#!/usr/bin/env python3
"""
Delete, archive or unsubscribe from a sender found by sync_senders.py.

Usage:
    python scripts/cleanup_sender.py --provider gmail --account me@gmail.com \
        --sender news@example.com --action delete --dry-run
    python scripts/cleanup_sender.py --provider outlook --account me@contoso.com \
        --sender deals@shop.test --action unsubscribe
"""

import argparse
import asyncio
import sys
from pathlib import Path

import httpx

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.cleanup import BulkMutationExecutor, MutationType
from src.database import Database, SyncRepository
from src.providers import ProviderError, ProviderType, client_from_config
from src.utils import Config, configure_logging, setup_logger


async def run(args, config: Config, logger) -> int:
    db = Database(args.db_path or config.DATABASE_PATH)
    db.create_tables()

    with db.get_session() as session:
        senders = SyncRepository(session).find_senders_by_email(args.account, args.sender)

    if not senders:
        logger.error(f"No synced messages from {args.sender}; run sync_senders.py first")
        return 1

    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS) as http:
        user_id = args.account if args.provider == ProviderType.OUTLOOK.value else None
        client = client_from_config(config, args.provider, http, user_id=user_id)
        executor = BulkMutationExecutor(client, http_client=http)

        if args.action == 'unsubscribe':
            result = await executor.unsubscribe(senders[0], dry_run=args.dry_run)
            logger.info(f"Unsubscribe via {result.method.value}: success={result.success}")
            if result.requires_action:
                logger.info(f"Manual action required: {result.link or 'no unsubscribe link'}")
            if result.error:
                logger.warning(result.error)
            return 0

        targets = {stats.key: stats.message_ids for stats in senders}
        result = await executor.execute(MutationType(args.action), targets, dry_run=args.dry_run)
        logger.info(result.message)

        if not args.dry_run and result.affected_ids:
            with db.get_session() as session:
                SyncRepository(session).remove_messages(args.account, result.affected_ids)

        return 0


def main():
    """Apply a cleanup action to one sender."""
    parser = argparse.ArgumentParser(description='Clean up mail from one sender')
    parser.add_argument('--provider', choices=[p.value for p in ProviderType], required=True)
    parser.add_argument('--account', required=True, help='Mailbox address')
    parser.add_argument('--sender', required=True, help='Sender address to act on')
    parser.add_argument(
        '--action',
        choices=[MutationType.DELETE.value, MutationType.ARCHIVE.value, 'unsubscribe'],
        required=True
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would happen without changing the mailbox'
    )
    parser.add_argument('--db-path', type=str, default=None)
    args = parser.parse_args()

    config = Config.load()
    config.validate()
    configure_logging(config.LOG_LEVEL, config.LOG_DIR)
    logger = setup_logger('cleanup_sender')

    try:
        sys.exit(asyncio.run(run(args, config, logger)))
    except (ProviderError, ValueError, FileNotFoundError) as e:
        logger.error(f"Cleanup failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
