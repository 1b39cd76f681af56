#!/usr/bin/env python3
"""
Initial Gmail OAuth2 authentication script.

Run this script once before syncing a Gmail account. It opens your browser
to authorize trash, archive and send access. Outlook accounts use the app
registration in GRAPH_* settings instead and need no interactive step.

Usage:
    python scripts/authenticate.py
    python scripts/authenticate.py --revoke
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.providers import GmailAuthenticator
from src.utils import Config, configure_logging, setup_logger


def main():
    """Run OAuth authentication flow."""
    parser = argparse.ArgumentParser(description='Authorize Gmail access for sender sync')
    parser.add_argument(
        '--revoke',
        action='store_true',
        help='Delete the stored token before authorizing again'
    )
    args = parser.parse_args()

    config = Config.load()
    config.validate()
    configure_logging(config.LOG_LEVEL, config.LOG_DIR)
    logger = setup_logger('authenticate')

    logger.info(f"Credentials path: {config.GMAIL_CREDENTIALS_PATH}")
    logger.info(f"Token path: {config.GMAIL_TOKEN_PATH}")

    if not Path(config.GMAIL_CREDENTIALS_PATH).exists():
        logger.error(
            f"Credentials file not found: {config.GMAIL_CREDENTIALS_PATH}\n"
            f"\n"
            f"To set up Gmail API credentials:\n"
            f"1. Go to https://console.cloud.google.com\n"
            f"2. Create a new project or select existing project\n"
            f"3. Enable the Gmail API\n"
            f"4. Create OAuth 2.0 credentials (Desktop app type)\n"
            f"5. Download credentials.json\n"
            f"6. Save it to: {config.GMAIL_CREDENTIALS_PATH}\n"
        )
        sys.exit(1)

    auth = GmailAuthenticator(
        credentials_path=config.GMAIL_CREDENTIALS_PATH,
        token_path=config.GMAIL_TOKEN_PATH
    )

    if args.revoke:
        auth.revoke_credentials()
        logger.info("Stored token removed")

    logger.info("Starting OAuth2 authentication flow; your browser will open...")

    try:
        auth.authenticate()
    except Exception as e:
        logger.error(f"Authentication failed: {e}")
        sys.exit(1)

    logger.info(f"Authentication successful, token saved to {config.GMAIL_TOKEN_PATH}")


if __name__ == '__main__':
    main()
