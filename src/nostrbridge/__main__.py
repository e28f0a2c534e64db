"""CLI entry point for nostrbridge.

Runs the poller and exposes the host-facing operations (identity, relays,
publish, status) as subcommands. The store is PostgreSQL unless
``--memory`` is given.

Examples:
    ```bash
    python -m nostrbridge poll --once
    python -m nostrbridge poll --full-resync --log-level DEBUG
    python -m nostrbridge identity set <64-hex-pubkey>
    python -m nostrbridge relays set wss://nos.lol wss://relay.damus.io
    python -m nostrbridge publish 42 signed-event.json
    python -m nostrbridge status --probe
    ```
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from nostrbridge.core import (
    ContentStore,
    MemoryStore,
    Pool,
    PostgresStore,
    configure_logging,
    start_metrics_server,
)
from nostrbridge.core.exceptions import NostrBridgeError
from nostrbridge.core.logger import Logger
from nostrbridge.core.yaml import load_yaml
from nostrbridge.services.poller import Poller


CONFIG_PATH = Path("config") / "nostrbridge.yaml"

logger = Logger("cli")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subparser per command."""
    parser = argparse.ArgumentParser(
        prog="nostrbridge",
        description="Two-way content bridge between a publishing platform and Nostr relays",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help=f"Config path (default: {CONFIG_PATH})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Use a throwaway in-memory store instead of PostgreSQL",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    poll = commands.add_parser("poll", help="Pull content from relays")
    poll.add_argument("--once", action="store_true", help="Run one cycle and exit")
    poll.add_argument("--full-resync", action="store_true", help="Ignore the stored checkpoint")

    status = commands.add_parser("status", help="Print identity, relays and sync counts")
    status.add_argument("--probe", action="store_true", help="Test a connection to each relay")

    identity = commands.add_parser("identity", help="Manage the deployment public key")
    identity_commands = identity.add_subparsers(dest="action", required=True)
    identity_set = identity_commands.add_parser("set", help="Store a public key")
    identity_set.add_argument("public_key", help="64-character hex public key")
    identity_commands.add_parser("clear", help="Forget the stored public key")

    relays = commands.add_parser("relays", help="Manage the relay list")
    relays_commands = relays.add_subparsers(dest="action", required=True)
    relays_set = relays_commands.add_parser("set", help="Replace the relay list")
    relays_set.add_argument("urls", nargs="*", help="Relay URLs; none restores the defaults")

    publish = commands.add_parser("publish", help="Publish a signed event for a record")
    publish.add_argument("record_id", type=int, help="Local record id")
    publish.add_argument("event_file", type=Path, help="JSON file holding the signed event")

    return parser


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    """Load a YAML file as a dict, returning ``{}`` if the file does not exist."""
    if not path.exists():
        logger.warning("config_not_found", path=str(path))
        return {}
    return load_yaml(path)


def _build_store(database_dict: dict[str, Any], *, memory: bool) -> ContentStore:
    if memory:
        return MemoryStore()
    return PostgresStore(Pool.from_dict(database_dict))


def _build_poller(store: ContentStore, poller_dict: dict[str, Any]) -> Poller:
    if poller_dict:
        return Poller.from_dict(poller_dict, store=store)
    return Poller(store)


def _emit(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=True) + "\n")


async def run_poller(poller: Poller, *, once: bool) -> int:
    """Run the poller in one-shot or continuous mode.

    In continuous mode a Prometheus metrics server is started and the
    poller runs until a shutdown signal is received.

    Returns:
        Exit code: 0 for success, 1 for failure.
    """
    if once:
        try:
            async with poller:
                await poller.run()
            logger.info("poll_completed")
            return 0
        except Exception as e:  # Intentionally broad: CLI error boundary for one-shot mode
            logger.error("poll_failed", error=str(e))
            return 1

    metrics_config = poller.config.metrics
    metrics_server = await start_metrics_server(metrics_config)
    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        poller.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        async with poller:
            await poller.run_forever()
        return 0
    except Exception as e:  # Intentionally broad: CLI error boundary for continuous mode
        logger.error("poll_failed", error=str(e))
        return 1
    finally:
        await metrics_server.stop()
        if metrics_config.enabled:
            logger.info("metrics_server_stopped")


async def _status(poller: Poller, *, probe: bool) -> int:
    status = await poller.identity.connection_status(poller.client, probe=probe)
    stats = await poller.sync.get_stats()
    _emit(
        {
            "connected": status.connected,
            "public_key": status.public_key,
            "npub": status.npub,
            "relays": list(status.relays),
            "reachable": status.reachable,
            "sync_enabled_default": await poller.sync.sync_enabled_default(),
            "stats": {
                "total_synced": stats.total_synced,
                "sync_enabled": stats.sync_enabled,
                "sync_failed": stats.sync_failed,
                "pending": stats.pending,
                "last_sync": stats.last_sync,
            },
        }
    )
    return 0


async def _publish(poller: Poller, record_id: int, event_file: Path) -> int:
    try:
        signed = json.loads(event_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error("event_file_unreadable", path=str(event_file), error=str(e))
        return 1

    relays = await poller.identity.get_relays()
    try:
        outcome = await poller.sync.publish(record_id, signed, relays)
    except KeyError:
        logger.error("record_not_found", record_id=record_id)
        return 1

    _emit(
        {
            "record_id": outcome.record_id,
            "event_id": outcome.event_id,
            "status": str(outcome.status),
            "accepted_by": outcome.accepted_by,
            "rejected": {
                relay: result.reason
                for relay, result in outcome.results.items()
                if not result.accepted
            },
        }
    )
    return 0 if outcome.success else 1


async def dispatch(args: argparse.Namespace, poller: Poller) -> int:
    """Execute a non-poll command against an initialized store."""
    if args.command == "status":
        return await _status(poller, probe=args.probe)

    if args.command == "identity":
        if args.action == "set":
            public_key = await poller.identity.save_public_key(args.public_key)
            logger.info("identity_saved", public_key=public_key)
        else:
            removed = await poller.identity.disconnect()
            logger.info("identity_cleared", removed=removed)
        return 0

    if args.command == "relays":
        relays = await poller.identity.save_relays(args.urls)
        _emit({"relays": relays})
        return 0

    return await _publish(poller, args.record_id, args.event_file)


async def run(args: argparse.Namespace) -> int:
    """Open the store and run the command selected by *args*."""
    config = _load_yaml_dict(args.config)
    try:
        store = _build_store(config.get("database") or {}, memory=args.memory)
        poller = _build_poller(store, config.get("poller") or {})
    except (PydanticValidationError, NostrBridgeError) as e:
        logger.error("config_invalid", error=str(e))
        return 1

    if args.command == "poll" and args.full_resync:
        poller.request_full_resync()

    try:
        async with store:
            if args.command == "poll":
                return await run_poller(poller, once=args.once)
            return await dispatch(args, poller)
    except NostrBridgeError as e:
        logger.error(f"{args.command}_failed", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


async def main(argv: list[str] | None = None) -> int:
    """Parse *argv* and run the selected command."""
    return await run(build_parser().parse_args(argv))


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    args = build_parser().parse_args()
    configure_logging(args.log_level)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    cli()
