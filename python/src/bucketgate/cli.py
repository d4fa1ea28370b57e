"""CLI entry point for BucketGate."""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from bucketgate.config import BucketGateConfig, default_config, load_config
from bucketgate.logging_config import configure_logging
from bucketgate.server import create_app

_DEFAULT_CONFIG = Path("bucketgate.yaml")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="bucketgate",
        description="BucketGate - filesystem-backed S3-compatible object gateway",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: bucketgate.yaml if present)",
    )
    parser.add_argument("--host", type=str, default=None, help="Host address to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on")
    parser.add_argument(
        "--root",
        type=str,
        default=None,
        help="Directory holding the buckets (overrides storage.local.root_dir)",
    )
    parser.add_argument(
        "--public-url",
        type=str,
        default=None,
        help="Base URL used in issued signed URLs (default: request base URL)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=int,
        default=None,
        help="Graceful shutdown timeout in seconds (default: 30)",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BucketGateConfig:
    """Load the config file and apply CLI overrides.

    An explicitly passed ``--config`` must exist. Without it,
    ``bucketgate.yaml`` is used when present and built-in defaults (plus
    environment secrets) otherwise.

    Raises:
        FileNotFoundError: If an explicit config file does not exist.
    """
    if args.config is not None:
        config = load_config(args.config)
    elif _DEFAULT_CONFIG.is_file():
        config = load_config(_DEFAULT_CONFIG)
    else:
        config = default_config()

    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.root is not None:
        config.storage.local_root = args.root
    if args.public_url is not None:
        config.server.public_url = args.public_url
    if args.log_level is not None:
        config.server.log_level = args.log_level
    if args.log_format is not None:
        config.server.log_format = args.log_format
    if args.shutdown_timeout is not None:
        config.server.shutdown_timeout = args.shutdown_timeout
    return config


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the BucketGate CLI.

    Loads configuration, applies CLI overrides, and starts the server
    using uvicorn.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    logger = logging.getLogger("bucketgate")

    try:
        config = build_config(args)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    configure_logging(
        level=config.server.log_level,
        fmt=config.server.log_format,
    )

    logger.info(
        "Starting BucketGate on %s:%d (root=%s)",
        config.server.host,
        config.server.port,
        config.storage.local_root,
    )

    app = create_app(config)

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        timeout_graceful_shutdown=config.server.shutdown_timeout,
        timeout_keep_alive=5,
    )


if __name__ == "__main__":
    main()
