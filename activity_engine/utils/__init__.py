"""Utility functions."""

from activity_engine.utils.timestamps import (
    Clock,
    utc_now,
    parse_timestamp,
    parse_timestamp_cached,
)
from activity_engine.utils.logging_config import (
    setup_logging,
    get_log_file_paths,
)

__all__ = [
    'Clock',
    'utc_now',
    'parse_timestamp',
    'parse_timestamp_cached',
    'setup_logging',
    'get_log_file_paths',
]
