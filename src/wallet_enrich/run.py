"""
CLI runner for wallet-enrich.

Usage:
    python -m wallet_enrich.run [OPTIONS]

    # Resolve the official domain of a service
    python -m wallet_enrich.run --search "Netflix"

    # Download (and cache) a favicon
    python -m wallet_enrich.run --icon netflix.com --size 128

    # Extract subscription fields from free text
    python -m wallet_enrich.run --parse "Spotify 10.99 USD monthly"

    # Spending advice for the stored subscriptions
    python -m wallet_enrich.run --advise
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .config import EnrichConfig
from .icons import normalize_domain
from .models import EnrichmentError
from .services import EnrichmentServices

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("wallet-enrich")


async def search(services: EnrichmentServices, query: str) -> int:
    outcome = await services.domains.resolve(query)
    print(json.dumps(outcome.to_dict()))
    return 0 if outcome.found else 1


async def fetch_icon(services: EnrichmentServices, domain: str, size: int) -> int:
    icon = await services.icons.resolve_icon(domain, size)
    logger.info(f"Icon for {domain} ({size}px): {len(icon.content)} bytes from {icon.source}")
    print(services.icons.cache.path_for(normalize_domain(domain), size))
    return 0


async def parse_text(services: EnrichmentServices, text: str) -> int:
    fields = await services.enricher.extract(text)
    print(json.dumps(fields.to_dict(), ensure_ascii=False))
    return 0


async def advise(services: EnrichmentServices) -> int:
    """Print advice for the active subscriptions in the database."""
    from datasette_wallet_os.migrations import run_migrations

    run_migrations(services.config.db_path)
    subscriptions = services.db.list_active()
    logger.info(f"Analyzing {len(subscriptions)} active subscription(s)")

    report = await services.enricher.advise(subscriptions)
    print(report.text)
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="wallet-enrich: Subscription enrichment tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Resolve a domain
    python -m wallet_enrich.run --search "Netflix"

    # Fetch a 128px icon
    python -m wallet_enrich.run --icon netflix.com --size 128

    # Use a specific config file
    python -m wallet_enrich.run --config datasette.yaml --advise
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("datasette.yaml"),
        help="Path to config file (default: datasette.yaml)",
    )
    parser.add_argument(
        "--db",
        type=Path,
        help="Override database path from config",
    )
    parser.add_argument(
        "--search",
        type=str,
        help="Resolve the official domain for a service name",
    )
    parser.add_argument(
        "--icon",
        type=str,
        help="Fetch the favicon for a domain",
    )
    parser.add_argument(
        "--size",
        type=int,
        help="Icon size in pixels (default from config)",
    )
    parser.add_argument(
        "--parse",
        type=str,
        help="Extract subscription fields from free text",
    )
    parser.add_argument(
        "--advise",
        action="store_true",
        help="Print spending advice for the stored subscriptions",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Load config
    config = EnrichConfig.from_yaml(args.config)
    if args.db:
        config.db_path = args.db

    logger.info(f"Config loaded from {args.config}")

    services = EnrichmentServices.build(config)

    try:
        if args.search:
            return asyncio.run(search(services, args.search))

        if args.icon:
            size = args.size or config.icons.default_size
            return asyncio.run(fetch_icon(services, args.icon, size))

        if args.parse:
            return asyncio.run(parse_text(services, args.parse))

        if args.advise:
            return asyncio.run(advise(services))
    except EnrichmentError as e:
        logger.error(str(e))
        return 1

    # Default: show help
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
