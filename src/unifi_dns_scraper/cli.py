#!/usr/bin/env python3
"""Scraper CLI and daemon loop.

Usage:
    unifi-dns-scraper --config scraper.yaml [--once] [-v]

Environment variables:
    SCRAPER_UNIFI_HOST       Override controller.host
    SCRAPER_UNIFI_USER       Override controller.username
    SCRAPER_UNIFI_PASSWORD   Override controller.password
    SCRAPER_LOG_LEVEL        Console log level (default: INFO)
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config.settings import ConfigurationInvalid, ScraperConfig
from .controller.unifi import UnifiController
from .reconcile.engine import Reconciler, scrape
from .reconcile.projection import render_hosts
from .reconcile.schema import CycleResult, Entry
from .sinks.database import RecordStore
from .sinks.errors import PersistenceFailed
from .sinks.hostsfile import write_hosts_file
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


class ScraperLoop:
    """Runs scrape cycles one after another, carrying results forward."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path
        self.entries: list[Entry] = []
        self.store: Optional[RecordStore] = None
        self.loop_count = 0

    async def run_once(self, config: ScraperConfig) -> CycleResult:
        """One full cycle: fetch, reconcile, write outputs."""
        # Only connect to the database the first time through
        if config.database.enabled and self.store is None:
            self.store = RecordStore.open(config.database)

        reconciler = Reconciler(config.processing)
        async with UnifiController(config.controller) as controller:
            result = await scrape(
                controller, reconciler, config.processing.additional, self.entries
            )
        self.entries = result.entries

        if not result.success:
            return result

        if config.hostsfile.filename:
            write_hosts_file(config.hostsfile.filename, render_hosts(result.entries))
        else:
            logger.warning("Hostfile output filename is empty - skipping")

        if self.store is not None:
            self.store.save(result.entries, config.processing.cnames)

        return result

    async def run(self, once: bool = False) -> int:
        while True:
            self.loop_count += 1
            logger.info(f"** Starting loop {self.loop_count} **")

            # Re-read every loop so edits apply without a restart
            config = ScraperConfig.load(self.config_path)
            logger.info(f"opened configuration file: {config.path}")

            try:
                await self.run_once(config)
            except PersistenceFailed as e:
                logger.error(f"Error saving results: {e}")

            if once or not config.daemonize:
                return 0

            logger.info(f"Sleeping for {config.sleep} seconds")
            logger.info(f"** Ending loop {self.loop_count} **")
            await asyncio.sleep(config.sleep)

    def close(self) -> None:
        if self.store is not None:
            self.store.close()
            self.store = None


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the scraper CLI."""
    parser = argparse.ArgumentParser(
        prog="unifi-dns-scraper",
        description="Publish UniFi clients and devices as a hosts file and DNS records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Single run
    unifi-dns-scraper --config scraper.yaml --once

    # Loop forever (set daemonize: true in the config)
    unifi-dns-scraper --config /etc/unifi-dns-scraper/scraper.yaml
""",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Configuration file (default: search ./configs, ./, ~/.config, /etc)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle even if daemonize is set",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose)

    scraper = ScraperLoop(args.config)
    try:
        return asyncio.run(scraper.run(once=args.once))
    except ConfigurationInvalid as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    finally:
        scraper.close()


if __name__ == "__main__":
    sys.exit(main())
