#!/usr/bin/env python3
"""
cfgsync - Entry Point

Loads configuration once and keeps it in sync until SIGTERM/SIGINT.

Usage:
    cfgsync                                         # search default paths for config.*
    cfgsync --config my.yaml                        # use a local file
    cfgsync --config etcd+http://127.0.0.1:2379/app/config.yaml
    cfgsync --config my.yaml --dry-run              # print merged config and exit
    cfgsync --set server.port=9000 -v               # override a key, debug logging

Any startup error is fatal: it is logged and the process exits with status 1.
"""

import argparse
import asyncio
import logging
import sys

import yaml

from cfgsync.common.config import LoaderSettings
from cfgsync.common.exceptions import StartupError
from cfgsync.common.logging_setup import configure_all, setup_logging
from cfgsync.config.flags import LoaderFlags, add_loader_flags
from cfgsync.config.service import ConfigService, service_from_flags

logger = logging.getLogger("cfgsync.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cfgsync",
        description="Load configuration from a file or etcd and keep it in sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Precedence (lowest to highest):
    defaults < config file / etcd < {PREFIX}_{KEY} environment < --set / flags

Remote locator:
    etcd+http://127.0.0.1:2379/path/to/key.yaml
        """,
    )
    add_loader_flags(parser)
    parser.add_argument(
        "--env-prefix",
        default="APP",
        help="Prefix for environment overrides (default: APP)",
    )
    parser.add_argument(
        "--name",
        dest="cfg_name",
        default="config",
        help="Config file name to search for without --config (default: config)",
    )
    parser.add_argument(
        "--health-port",
        type=int,
        default=None,
        help="Serve /health and /reload on 127.0.0.1:PORT",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Load, print the merged configuration as YAML and exit",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
        type=str.upper,
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=("json", "text"),
        default="json",
        help="Log format (default: json)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging (same as --log-level DEBUG)",
    )
    return parser


async def run(service: ConfigService, dry_run: bool = False) -> None:
    """
    Start the service and block until shutdown.

    Args:
        service: Configured, not yet started service
        dry_run: Load once, print, and return without watching
    """
    snapshot = await service.start(watch=not dry_run)

    if dry_run:
        await service.stop()
        print(yaml.safe_dump(snapshot.to_dict(), default_flow_style=False, sort_keys=True), end="")
        return

    logger.info(
        f"Config loaded: {len(snapshot)} keys from {snapshot.source}",
        extra={"key_count": len(snapshot), "source": snapshot.source},
    )
    await service.run_forever()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = "DEBUG" if args.verbose else args.log_level
    json_format = args.log_format == "json"
    # stdout is reserved for command output
    setup_logging("main", log_level=log_level, json_format=json_format, stream=sys.stderr)
    configure_all(log_level, json_format, stream=sys.stderr)

    flags = LoaderFlags.from_namespace(args)

    try:
        service = service_from_flags(
            args.env_prefix,
            args.cfg_name,
            flags,
            settings=LoaderSettings.from_env(),
            health_port=args.health_port,
        )
        asyncio.run(run(service, dry_run=args.dry_run))
    except StartupError as e:
        logger.critical(f"Error reading config: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")

    return 0


if __name__ == "__main__":
    sys.exit(main())
