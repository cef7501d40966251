"""
Unit tests for timestamp parsing
"""
import math
from datetime import datetime, timezone

import pytest
from tests.unit.test_event_utils import BASE_TIME
from activity_engine.utils import parse_timestamp, parse_timestamp_cached, utc_now

EPOCH_SECONDS = 1730894400  # BASE_TIME


class TestParseTimestamp:

    @pytest.mark.parametrize('raw', [
        EPOCH_SECONDS,
        float(EPOCH_SECONDS),
        EPOCH_SECONDS * 1000,           # Milliseconds
        str(EPOCH_SECONDS * 1000),
        "2024-11-06T12:00:00Z",
        "2024-11-06T12:00:00+00:00",
        "2024-11-06T12:00:00",          # Naive ISO is treated as UTC
        BASE_TIME,
    ])
    def test_formats(self, raw):
        assert parse_timestamp(raw) == BASE_TIME

    def test_naive_datetime_gets_utc(self):
        parsed = parse_timestamp(datetime(2024, 11, 6, 12, 0, 0))
        assert parsed.tzinfo == timezone.utc

    @pytest.mark.parametrize('raw', [None, "", "  ", "yesterday", True, -5, math.nan, math.inf, [1, 2]])
    def test_unparseable(self, raw):
        assert parse_timestamp(raw) is None

    def test_cached_matches_uncached(self):
        assert parse_timestamp_cached("2024-11-06T12:00:00Z") == BASE_TIME

    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None
