#!/usr/bin/env python3
"""
Public Endpoint Tour for the Deribit HTTP Client.

Calls the unauthenticated market data and system endpoints and prints a
short summary of each. No credentials are needed.

Usage:
    # Testnet (default)
    python scripts/public_endpoints.py

    # Another instrument, deeper book
    python scripts/public_endpoints.py --instrument ETH-PERPETUAL --currency ETH --depth 10

    # Production
    python scripts/public_endpoints.py --production
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.deribit import DeribitClient, DeribitError, DeribitREST, InstrumentKind
from src.lib.config import HttpConfig, load_config
from src.lib.logging_utils import setup_logging

logger = logging.getLogger(__name__)


async def run_tour(args: argparse.Namespace) -> None:
    """Call each public endpoint once."""
    config = load_config(args.config)
    if args.production:
        config.http = HttpConfig.production_config()

    async with DeribitClient(config=config) as client:
        rest = DeribitREST(client)

        server_ms = await rest.get_server_time()
        server_time = datetime.fromtimestamp(server_ms / 1000, tz=timezone.utc)
        logger.info(f"Server time: {server_time.isoformat()} ({client.base_url})")

        version = await rest.test_connection()
        logger.info(f"API version: {version}")

        status = await rest.get_status()
        logger.info(f"Platform locked: {status.get('locked')}")

        currencies = await rest.get_currencies()
        logger.info(f"Currencies: {', '.join(c.get('currency', '?') for c in currencies)}")

        index_name = f"{args.currency.lower()}_usd"
        index_price = await rest.get_index_price(index_name)
        logger.info(f"Index {index_name}: {index_price:,.2f}")

        ticker = await rest.get_ticker(args.instrument)
        logger.info(
            f"{ticker.instrument_name}: bid={ticker.best_bid_price} ask={ticker.best_ask_price} "
            f"mark={ticker.mark_price} spread={ticker.spread}"
        )

        book = await rest.get_order_book(args.instrument, depth=args.depth)
        for price, amount in book.asks[::-1]:
            logger.info(f"    ask {price:>12,.2f} x {amount:,.0f}")
        for price, amount in book.bids:
            logger.info(f"    bid {price:>12,.2f} x {amount:,.0f}")

        instruments = await rest.get_instruments(args.currency, kind=InstrumentKind.FUTURE)
        logger.info(f"{len(instruments)} active {args.currency} futures")

        contract_size = await rest.get_contract_size(args.instrument)
        logger.info(f"Contract size: {contract_size}")

        trades = await rest.get_last_trades_by_instrument(args.instrument, count=5)
        for trade in trades:
            logger.info(f"    {trade.timestamp:%H:%M:%S} {trade.direction.value:<4} {trade.amount:,.0f} @ {trade.price:,.2f}")

        summaries = await rest.get_book_summary_by_currency(args.currency, kind=InstrumentKind.FUTURE)
        volume = sum(s.get("volume") or 0 for s in summaries)
        logger.info(f"24h {args.currency} futures volume: {volume:,.2f}")


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Tour the public Deribit endpoints',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        '--instrument',
        type=str,
        default='BTC-PERPETUAL',
        help='Instrument for ticker, order book and trades',
    )
    parser.add_argument(
        '--currency',
        type=str,
        default='BTC',
        help='Currency for instruments, index and book summary',
    )
    parser.add_argument(
        '--depth',
        type=int,
        default=5,
        help='Order book depth',
    )
    parser.add_argument(
        '--production',
        action='store_true',
        help='Use the production API instead of the testnet',
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
        help='Enable debug logging (shows each request and throttle event)',
    )

    return parser.parse_args()


def main():
    """Main entry point."""
    args = parse_args()
    setup_logging(level="DEBUG" if args.debug else "INFO")

    try:
        asyncio.run(run_tour(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except DeribitError as e:
        logger.error(f"API error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
