#!/usr/bin/env python3
"""
PinMon CLI Entry Point
Command-line interface for the pin monitor daemon.
"""

import sys
import asyncio
import argparse
import logging
import signal
from typing import List, Optional

from . import __version__
from .core.config import Config, ConfigError, parse_mapping, GPIO_MODES, BACKPRESSURE_POLICIES
from .server import PinMonitorServer

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Setup logging configuration"""
    log_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        prog="pinmon",
        description="PinMon - broadcast GPIO input state changes to network listeners",
    )
    parser.add_argument(
        "-n", "--name",
        action="append",
        default=[],
        metavar="PIN:NAME",
        help="Pin number : name, like this: '23:Thing attached to pin 23' (repeatable)"
    )
    parser.add_argument(
        "-s", "--state",
        action="append",
        default=[],
        metavar="STATE:NAME",
        help="Pin state : description, like this: '1:Pin enabled' (repeatable)"
    )
    parser.add_argument(
        "-l", "--listen",
        type=int,
        help="TCP listen port (non-positive disables the TCP feed)"
    )
    parser.add_argument(
        "--host",
        type=str,
        help="TCP listen address (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--interval",
        type=int,
        metavar="MS",
        help="Polling interval in milliseconds (default: 100)"
    )
    parser.add_argument(
        "--web-port",
        type=int,
        help="HTTP/WebSocket feed port (default: disabled)"
    )
    parser.add_argument(
        "--zmq-endpoint",
        type=str,
        help="ZeroMQ PUB endpoint, e.g. tcp://*:5556 (default: disabled)"
    )
    parser.add_argument(
        "--gpio-mode",
        type=str.upper,
        choices=GPIO_MODES,
        help="GPIO numbering mode (default: BCM)"
    )
    parser.add_argument(
        "--simulator",
        action="store_true",
        help="Use the GPIO simulator instead of hardware"
    )
    parser.add_argument(
        "--no-pull-up",
        action="store_true",
        help="Leave pull-up resistors disabled"
    )
    parser.add_argument(
        "--queue-size",
        type=int,
        help="Event queue size, 0 for unbounded (default: 1)"
    )
    parser.add_argument(
        "--backpressure",
        choices=BACKPRESSURE_POLICIES,
        help="What the sampler does when the event queue is full (default: block)"
    )
    parser.add_argument(
        "--log-changes",
        action="store_true",
        help="Also write change notifications to the log"
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Configuration file path"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Log file path (default: console only)"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"PinMon {__version__}"
    )
    return parser


def build_config(args: argparse.Namespace) -> Config:
    """Load configuration and apply command line overrides"""
    if args.config:
        config = Config.from_file(args.config)
    else:
        config = Config.from_env()

    if args.name:
        config.pin_names.update(parse_mapping(args.name))
    if args.state:
        config.state_names.update(parse_mapping(args.state))
    if args.listen is not None:
        config.tcp_port = args.listen
    if args.host:
        config.tcp_host = args.host
    if args.interval is not None:
        config.poll_interval_ms = args.interval
    if args.web_port is not None:
        config.web_port = args.web_port
    if args.zmq_endpoint:
        config.zmq_endpoint = args.zmq_endpoint
    if args.gpio_mode:
        config.gpio_mode = args.gpio_mode
    if args.simulator:
        config.gpio_mode = "SIMULATOR"
    if args.no_pull_up:
        config.pull_up = False
    if args.queue_size is not None:
        config.event_queue_size = args.queue_size
    if args.backpressure:
        config.backpressure = args.backpressure
    if args.log_changes:
        config.log_changes = True
    config.log_level = args.log_level

    config.validate()
    return config


def main(argv: Optional[List[str]] = None):
    """Main entry point for the pinmon daemon"""
    parser = create_parser()
    args = parser.parse_args(argv)

    logger = setup_logging(args.log_level, args.log_file)

    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)

    if not config.pin_names:
        logger.warning("No pins configured, nothing will be monitored")

    logger.info(f"Starting PinMon {__version__}")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        server = PinMonitorServer(config)

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            loop.call_soon_threadsafe(loop.create_task, server.stop())

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        loop.run_until_complete(server.start())

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)
    finally:
        loop.close()
        logger.info("PinMon stopped")


if __name__ == "__main__":
    main()
