"""
Command-line entry point.

Usage:
    kafka-pusher --config config.yaml            # scheduled if enabled, else one round
    kafka-pusher --config config.yaml --once     # exactly one round
    kafka-pusher --config config.yaml --dry-run  # print messages, no Kafka

Exit codes:
    0: Success
    1: Configuration, startup or push failure
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from . import __version__
from .app import PushError, Pusher, build_generators
from .config.settings import DEFAULT_CONFIG_PATH, Config, ConfigError, load_config
from .logging_config import configure_logging
from .scheduler import Scheduler, SchedulerError
from .template import LoadError
from .transport import Producer, StdoutSender, TransportError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kafka-pusher",
        description="Generate templated JSON messages and push them to Kafka.",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH,
                        help="path to configuration file (default: %(default)s)")
    parser.add_argument("--once", action="store_true",
                        help="push a single round even if the scheduler is enabled")
    parser.add_argument("--dry-run", action="store_true",
                        help="write generated messages to stdout instead of Kafka")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    return parser


def run(config: Config, once: bool = False, dry_run: bool = False,
        stop_event: Optional[threading.Event] = None) -> None:
    """
    Run the pusher until done (single round) or until ``stop_event`` is set.

    Raises:
        LoadError, TransportError, PushError, SchedulerError
    """
    generators = build_generators(config.payloads)
    sender = StdoutSender(sys.stdout) if dry_run else Producer(config.kafka)
    if not dry_run:
        logger.info(f"Kafka producer initialized (brokers={', '.join(config.kafka.brokers)})")

    pusher = Pusher(config, sender, generators=generators)
    try:
        if once or not config.scheduler_enabled:
            logger.info("Running in single-shot mode")
            sent = pusher.push_round()
            logger.info(f"Pushed {sent} messages")
            return

        stop_event = stop_event or threading.Event()
        scheduler = Scheduler(config.scheduler, pusher.push_round)
        scheduler.start()
        logger.info("Scheduler started, waiting for termination signal")
        try:
            stop_event.wait()
            logger.info("Received termination signal, shutting down")
        finally:
            scheduler.stop()
    finally:
        pusher.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(config.logging, stream=sys.stderr if args.dry_run else None)
    logger.info(f"Starting kafka-pusher {__version__}")

    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        stop_event.set()

    previous = {sig: signal.signal(sig, _handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)}

    try:
        run(config, once=args.once, dry_run=args.dry_run, stop_event=stop_event)
    except (LoadError, TransportError, PushError, SchedulerError) as e:
        logger.error(f"Application error: {e}")
        return 1
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    logger.info("kafka-pusher stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
