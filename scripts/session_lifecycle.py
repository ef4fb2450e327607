#!/usr/bin/env python3
"""
OAuth2 Session Lifecycle Walkthrough.

Authenticates with client credentials, makes a private call, forces a token
refresh, optionally forks a named session or exchanges into a subaccount,
and logs out.

IMPORTANT REQUIREMENTS:
- Set DERIBIT_CLIENT_ID and DERIBIT_CLIENT_SECRET environment variables
- Defaults to the testnet; use testnet API keys

Usage:
    # Authenticate, refresh, logout
    python scripts/session_lifecycle.py

    # Also fork a named session
    python scripts/session_lifecycle.py --fork-session bot

    # Also exchange into a subaccount
    python scripts/session_lifecycle.py --subject-id 12345
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.deribit import ConfigError, DeribitClient, DeribitError, DeribitREST
from src.lib.config import load_config
from src.lib.logging_utils import setup_logging

logger = logging.getLogger(__name__)


def validate_environment(config) -> bool:
    """Check that credentials are configured."""
    if not config.http.has_credentials:
        logger.error("DERIBIT_CLIENT_ID and DERIBIT_CLIENT_SECRET must be set")
        return False
    return True


async def run_lifecycle(args: argparse.Namespace) -> None:
    """Walk a session through its states."""
    config = load_config(args.config)
    if args.scope:
        config.auth.scope = args.scope

    async with DeribitClient(config=config) as client:
        rest = DeribitREST(client)

        token = client.auth.current_token
        logger.info(f"Authenticated: scope={token.scope!r}, "
                    f"expires in {token.seconds_until_expiry(time.time()):.0f}s")

        summary = await rest.get_account_summary(args.currency)
        logger.info(f"{summary.currency} equity={summary.equity} available={summary.available_funds}")

        refreshed = await client.auth.refresh()
        logger.info(f"Refreshed: expires in {refreshed.seconds_until_expiry(time.time()):.0f}s")

        if args.fork_session:
            forked = await client.fork_token(None, session_name=args.fork_session)
            logger.info(f"Forked session {args.fork_session!r}: session_id={forked.session_id}")

        if args.subject_id is not None:
            exchanged = await client.exchange_token(None, subject_id=args.subject_id)
            logger.info(f"Exchanged into subject {args.subject_id}: scope={exchanged.scope!r}")
            summary = await rest.get_account_summary(args.currency)
            logger.info(f"Subaccount {summary.currency} equity={summary.equity}")

        await client.logout()
        logger.info(f"Logged out: authenticated={client.is_authenticated}")


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Walk through the OAuth2 session lifecycle',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        '--currency',
        type=str,
        default='BTC',
        help='Currency for the account summary call',
    )
    parser.add_argument(
        '--scope',
        type=str,
        default=None,
        help='Scope to request on authenticate (e.g. "session:bot trade:read")',
    )
    parser.add_argument(
        '--fork-session',
        type=str,
        default=None,
        help='Fork the session under this name',
    )
    parser.add_argument(
        '--subject-id',
        type=int,
        default=None,
        help='Exchange the session into this subaccount',
    )
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Optional YAML config file',
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging',
    )

    return parser.parse_args()


def main():
    """Main entry point."""
    args = parse_args()
    setup_logging(level="DEBUG" if args.debug else "INFO")

    try:
        if not validate_environment(load_config(args.config)):
            sys.exit(1)
        asyncio.run(run_lifecycle(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except DeribitError as e:
        logger.error(f"API error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
