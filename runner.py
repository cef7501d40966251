import argparse
import json
import logging
import os
import sys
from typing import Dict, Iterable, Optional, TextIO

from dotenv import load_dotenv

from activity_engine.config import ConfigError, load_config
from activity_engine.detection import Alert
from activity_engine.stream import RealtimeMonitor
from activity_engine.utils import setup_logging


def load_market_titles(path: Optional[str]) -> Dict[str, str]:
    """Load an asset_id -> title mapping from a JSON file"""
    if not path:
        return {}
    with open(path, 'r') as f:
        titles = json.load(f)
    if not isinstance(titles, dict):
        raise ConfigError(f"Market titles file {path} must contain a JSON object")
    return {str(asset_id): str(title) for asset_id, title in titles.items()}


def run_stream(monitor: RealtimeMonitor, lines: Iterable[str], logger: logging.Logger) -> int:
    """Feed newline-delimited JSON messages through the monitor; returns alert count"""
    alert_count = 0
    for line_number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        alerts = monitor.handle_message(line)
        alert_count += len(alerts)
        monitor.maybe_cleanup()
        if line_number % 10000 == 0:
            logger.info(f"Processed {line_number} lines, {alert_count} alerts so far")
    return alert_count


def log_alert(alert: Alert):
    logger = logging.getLogger("Main")
    title = alert.market_title or alert.market
    logger.info(f"[{alert.type.value}] {title}: {alert.reasoning}")


def open_input(path: str) -> TextIO:
    if path == '-':
        return sys.stdin
    return open(path, 'r', encoding='utf-8')


if __name__ == "__main__":
    # Load environment variables
    load_dotenv()

    parser = argparse.ArgumentParser(description="Polymarket Activity Engine")
    parser.add_argument("input", nargs="?", default="-",
                        help="Newline-delimited JSON stream messages ('-' for stdin)")
    parser.add_argument("--config", type=str,
                        default=os.getenv("ACTIVITY_ENGINE_CONFIG"),
                        help="Path to config file")
    parser.add_argument("--titles", type=str, default=None,
                        help="JSON file mapping asset_id to market title")
    parser.add_argument("--log-level", type=str,
                        default=os.getenv("ACTIVITY_ENGINE_LOG_LEVEL"),
                        help="Console log level (overrides config)")
    args = parser.parse_args()

    try:
        full_config = load_config(args.config) if args.config else {}
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(full_config, level_override=args.log_level)
    main_logger = logging.getLogger("Main")

    monitor = RealtimeMonitor(full_config, market_titles=load_market_titles(args.titles))
    monitor.add_alert_callback(log_alert)

    main_logger.info(f"Reading stream messages from {'stdin' if args.input == '-' else args.input}")
    stream = open_input(args.input)
    try:
        total_alerts = run_stream(monitor, stream, main_logger)
    except KeyboardInterrupt:
        main_logger.info("Shutting down...")
    else:
        main_logger.info(f"Stream finished: {total_alerts} alerts")
    finally:
        if stream is not sys.stdin:
            stream.close()
        main_logger.info(f"Final stats: {monitor.stats()}")
