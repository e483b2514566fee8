from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import Config, ConfigError, load_config
from .graphite import GraphiteClient, LoggingSink
from .nodes import NodeStore
from .poller import Poller
from .status import status_command_available

log = logging.getLogger("cincexporter")

def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="cincexporter", description="Send CINC node and service health to Graphite")
    p.add_argument("--config", default=None, help="YAML config file (environment variables override it)")
    p.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    p.add_argument("--interval", type=int, default=None, help="Polling interval (seconds)")
    p.add_argument("--dry-run", action="store_true", default=None, help="Log metrics instead of sending them")
    p.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    return p.parse_args(argv)

def build_poller(config: Config) -> Poller:
    """Open collaborators; any failure here is fatal to the process."""
    if not status_command_available(config.status_command):
        raise FileNotFoundError(f"status command not found: {config.status_command[0]}")

    store = NodeStore.from_url(config.database_url)
    try:
        store.ping()
    except SQLAlchemyError:
        store.close()
        raise

    sink = LoggingSink() if config.dry_run else GraphiteClient(config.graphite_host, config.graphite_port)
    try:
        sink.connect()
    except OSError:
        store.close()
        raise
    return Poller(config, store, sink)

def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level or "INFO")

    try:
        config = load_config(args.config).with_overrides(
            interval_s=args.interval,
            dry_run=args.dry_run,
            log_level=args.log_level,
        )
    except ConfigError as e:
        log.error("Invalid configuration: %s", e)
        return 1
    setup_logging(config.log_level, config.log_file)

    try:
        poller = build_poller(config)
    except SQLAlchemyError as e:
        log.error("Unable to connect to database: %s", e)
        return 1
    except FileNotFoundError as e:
        log.error("Unable to run status command: %s", e)
        return 1
    except OSError as e:
        log.error("Unable to connect to Graphite at %s:%s: %s", config.graphite_host, config.graphite_port, e)
        return 1

    def _stop(signum, frame):
        log.info("Received signal %s, shutting down...", signum)
        poller.stop()

    previous = {sig: signal.signal(sig, _stop) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        if args.once:
            report = poller.run_cycle()
            return 0 if report.ok else 1
        log.info("Polling every %ss", config.interval_s)
        poller.run_forever()
        return 0
    finally:
        poller.close()
        for sig, handler in previous.items():
            signal.signal(sig, handler)

if __name__ == "__main__":
    sys.exit(main())
