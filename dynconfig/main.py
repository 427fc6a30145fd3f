#!/usr/bin/env python3
"""
dynconfig - Dynamic Configuration Client Entry Point

Polls the configured AWS AppConfig profile and keeps a flattened,
typed copy of it in memory.

Usage:
    dynconfig                          # Run with config.yaml, refresh every 5 minutes
    dynconfig --config my.yaml         # Use custom settings file
    dynconfig --once                   # Fetch once, print stats and exit
    dynconfig --once --dump            # Also print every flattened key
    dynconfig --verbose                # Enable debug logging

Environment overrides: AWS_REGION, APPCONFIG_APPLICATION_ID,
APPCONFIG_ENVIRONMENT, APPCONFIG_CONFIGURATION_PROFILE,
APPCONFIG_REFRESH_INTERVAL_S.
"""

import argparse
import asyncio
import json
import signal
import sys
from typing import Callable, Mapping

from dynconfig import __version__
from dynconfig.common.config import (
    ClientSettings,
    apply_env_overrides,
    load_client_settings,
    load_settings_file,
)
from dynconfig.common.exceptions import SettingsError
from dynconfig.common.logging_setup import get_service_logger, set_log_level
from dynconfig.services.config import ConfigService
from dynconfig.services.config.store import ConfigStore, create_store

logger = get_service_logger("main")

# Default settings path
DEFAULT_CONFIG_PATH = "config.yaml"


def load_settings(config_path: str, environ: Mapping[str, str] | None = None) -> ClientSettings:
    """
    Load settings from YAML file and environment.

    Args:
        config_path: Path to settings file (may not exist)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Client settings
    """
    raw = load_settings_file(config_path)
    return apply_env_overrides(load_client_settings(raw), environ)


def print_startup_banner(settings: ClientSettings) -> None:
    """Print startup information."""
    print()
    print("=" * 60)
    print(f"  DYNCONFIG CLIENT v{__version__}")
    print("=" * 60)
    print()
    print(f"  Application:   {settings.application_id or 'not set (client disabled)'}")
    print(f"  Environment:   {settings.environment}")
    print(f"  Profile:       {settings.configuration_profile}")
    print(f"  Region:        {settings.region}")
    print(f"  Refresh every: {settings.refresh_interval_s:.0f}s")
    print()
    print("=" * 60)
    print()


async def run_once(
    settings: ClientSettings,
    dump: bool = False,
    store_factory: Callable[[ClientSettings], ConfigStore] | None = None,
) -> dict:
    """
    Start the client, perform the initial fetch, report and stop.

    Returns:
        Stats dictionary from the service
    """
    service = ConfigService(settings, store_factory or create_store)

    async with service:
        stats = service.get_stats()
        print(json.dumps(stats, indent=2, default=str))

        if dump:
            for key in sorted(service.all_keys()):
                print(f"{key} = {service.get_string(key)}")

    return stats


async def run_forever(
    settings: ClientSettings,
    store_factory: Callable[[ClientSettings], ConfigStore] | None = None,
) -> None:
    """Run the client until SIGINT/SIGTERM"""
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(shutdown_event.set))

    service = ConfigService(settings, store_factory or create_store)

    async with service:
        if not service.is_enabled():
            logger.warning("Configuration client disabled, nothing to run")
            return

        logger.info("Configuration client running")
        await shutdown_event.wait()
        logger.info("Received shutdown signal")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="dynconfig - dynamic configuration client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    dynconfig                          # Run with config.yaml
    dynconfig --config my.yaml         # Use custom settings file
    dynconfig --once --dump            # Fetch once and print all keys
    dynconfig -v                       # Enable debug logging
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to settings file (default: {DEFAULT_CONFIG_PATH})"
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Fetch configuration once, print stats and exit"
    )

    parser.add_argument(
        "--dump",
        action="store_true",
        help="With --once, print every flattened key and value"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"dynconfig v{__version__}"
    )

    args = parser.parse_args(argv)

    if args.verbose:
        set_log_level("DEBUG")

    try:
        settings = load_settings(args.config)
    except SettingsError as e:
        print(f"Error loading settings: {e.message}")
        return 1

    errors = settings.validate()
    if errors:
        print("Settings errors:")
        for error in errors:
            print(f"  - {error}")
        return 1

    if args.once:
        asyncio.run(run_once(settings, dump=args.dump))
        return 0

    print_startup_banner(settings)
    print("Press Ctrl+C to stop")
    print()

    try:
        asyncio.run(run_forever(settings))
    except KeyboardInterrupt:
        print("\nStopped by user")

    return 0


if __name__ == "__main__":
    sys.exit(main())
