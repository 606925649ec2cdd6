"""Main entry point for the Chargewatch live-state console."""

import sys
from pathlib import Path

# Add src directory to Python path when running directly (not as installed package)
if __package__ is None:
    src_dir = Path(__file__).parent.parent.parent
    if str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))

import argparse
import asyncio
import json
import logging
from datetime import timedelta

from prometheus_client import start_http_server

from chargewatch.database import Database
from chargewatch.logging_utils import JSONFormatter, log_error, log_snapshot_event
from chargewatch.models import DeviceSnapshot
from chargewatch.plugins import (
    ConnectorTransitionPlugin,
    FluentdAuditPlugin,
    PrometheusMetricsPlugin,
)
from chargewatch.poller import PollerRegistry
from chargewatch.service import LiveStateService
from chargewatch.settings import (
    DEFAULT_FRAME_LIMIT,
    DEFAULT_POLL_INTERVAL,
    OFFLINE_THRESHOLD,
    STALE_TRANSACTION_AFTER,
    ReconstructionSettings,
)

CONSOLE_CONSUMER = "console"


def setup_logging(level: str = "INFO", log_file: str | None = None):
    """Configure JSON logging for the application."""
    json_formatter = JSONFormatter()

    # Logs go to stderr; stdout carries the snapshot stream
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(json_formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(json_formatter)
        handlers.append(file_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = handlers

    # Suppress verbose logging from dependencies
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("fluent").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Chargewatch - derive live charge-point state from the OCPP frame log"
    )
    parser.add_argument(
        "--db",
        default="chargewatch.db",
        help="Path to SQLite database file (default: chargewatch.db)",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Open an existing frame log read-only instead of creating the schema",
    )
    parser.add_argument(
        "--device",
        action="append",
        dest="devices",
        default=None,
        help="Device ID to watch; repeat for several (default: all known devices)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between polls (default: {DEFAULT_POLL_INTERVAL})",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Print one snapshot per device and exit",
    )
    parser.add_argument(
        "--frame-limit",
        type=int,
        default=DEFAULT_FRAME_LIMIT,
        help=f"Frames read per device and poll (default: {DEFAULT_FRAME_LIMIT})",
    )
    parser.add_argument(
        "--offline-threshold",
        type=float,
        default=OFFLINE_THRESHOLD.total_seconds(),
        help="Seconds of silence before a device is Offline (default: 300)",
    )
    parser.add_argument(
        "--stale-after",
        type=float,
        default=STALE_TRANSACTION_AFTER.total_seconds(),
        help="Seconds after which an unstopped StartTransaction is ignored (default: 7200)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write JSON logs to this file (default: disabled)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for Prometheus metrics HTTP server (default: disabled)",
    )
    parser.add_argument(
        "--fluentd-endpoint",
        default=None,
        help="Fluentd endpoint in host:port format (e.g., localhost:24224). If provided, enables Fluentd audit logging.",
    )
    parser.add_argument(
        "--fluentd-tag",
        default="chargewatch",
        help="Tag prefix for Fluentd events (default: chargewatch)",
    )
    return parser


def parse_fluentd_endpoint(parser: argparse.ArgumentParser, endpoint: str) -> tuple[str, int]:
    """Split a host:port endpoint, reporting problems through the parser."""
    if ":" not in endpoint:
        parser.error("--fluentd-endpoint must be in host:port format (e.g., localhost:24224)")
    host, port_str = endpoint.rsplit(":", 1)
    if not host:
        parser.error("--fluentd-endpoint host cannot be empty")
    try:
        port = int(port_str)
    except ValueError:
        parser.error(f"Invalid port in --fluentd-endpoint: {endpoint}")
    return host, port


def settings_from_args(args: argparse.Namespace) -> ReconstructionSettings:
    return ReconstructionSettings(
        offline_threshold=timedelta(seconds=args.offline_threshold),
        stale_transaction_after=timedelta(seconds=args.stale_after),
        frame_limit=args.frame_limit,
        poll_interval=args.interval,
    )


def print_snapshot(snapshot: DeviceSnapshot):
    """Write a snapshot to stdout as one JSON line."""
    print(json.dumps(snapshot.to_dict()), flush=True)


async def main(argv: list[str] | None = None):
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    fluentd_host = None
    fluentd_port = None
    if args.fluentd_endpoint:
        fluentd_host, fluentd_port = parse_fluentd_endpoint(parser, args.fluentd_endpoint)

    try:
        settings = settings_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    setup_logging(args.log_level, args.log_file)
    logger = logging.getLogger(__name__)

    logger.info(
        "System starting",
        extra={
            "event_type": "system_startup",
            "event_data": {
                "database": args.db,
                "read_only": args.read_only,
                "devices": args.devices,
                "interval": args.interval,
                "metrics_port": args.metrics_port,
                "fluentd_enabled": args.fluentd_endpoint is not None,
                "fluentd_endpoint": args.fluentd_endpoint,
            },
        },
    )

    db = Database(args.db, read_only=args.read_only)
    try:
        await db.initialize_schema()
        service = LiveStateService(await db.connect(), settings)
        device_ids = args.devices or await service.device_repo.get_all_ids()

        if args.once:
            for device_id in device_ids:
                try:
                    print_snapshot(await service.get_snapshot(device_id))
                except Exception as e:
                    log_error(
                        logger,
                        "snapshot_error",
                        f"Could not derive snapshot for {device_id}: {e}",
                        device_id=device_id,
                    )
            return

        if not device_ids:
            logger.warning("No devices to watch")
            return

        if args.metrics_port:
            start_http_server(args.metrics_port)

        def create_plugins():
            plugins = [ConnectorTransitionPlugin()]

            if args.metrics_port:
                plugins.append(PrometheusMetricsPlugin())

            if args.fluentd_endpoint:
                plugins.append(
                    FluentdAuditPlugin(
                        tag_prefix=args.fluentd_tag,
                        host=fluentd_host,
                        port=fluentd_port,
                        timeout=3.0,
                    )
                )

            return plugins

        def on_snapshot(snapshot: DeviceSnapshot):
            print_snapshot(snapshot)
            log_snapshot_event(logger, snapshot.device_id, snapshot)

        registry = PollerRegistry(
            service.get_snapshot,
            interval=settings.poll_interval,
            plugin_factory=create_plugins,
        )
        for device_id in device_ids:
            registry.start(device_id, on_snapshot, consumer_id=CONSOLE_CONSUMER)

        try:
            await asyncio.Future()  # Run until cancelled
        finally:
            await registry.close()
            logger.info(
                "System shutting down",
                extra={"event_type": "system_shutdown", "event_data": {"pollers": len(device_ids)}},
            )
    finally:
        await db.disconnect()


def run():
    """Entry point for console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown complete", file=sys.stderr)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
