"""
Integration tests: raw stream messages -> normalizer -> detector/velocity -> alerts
"""
import logging
from datetime import timedelta

import pytest
import yaml
from tests.unit.test_event_utils import (
    BASE_TIME, FakeClock, at,
    create_book_message, create_price_change_message, create_trade_message, to_ndjson,
)
from activity_engine.config import load_config
from activity_engine.detection import AlertType, Direction
from activity_engine.stream import RealtimeMonitor
from runner import load_market_titles, run_stream


class TestStreamPipeline:
    """End-to-end tests over a synthetic market feed"""

    @pytest.fixture
    def config(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump({
            'unusual_activity': {
                'alert_cooldown_seconds': 60,
                'volume_window_seconds': 600,
                'flash_move_window_seconds': 30,
            },
            'velocity_tracker': {'min_data_points': 3},
        }))
        return load_config(config_file)

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def monitor(self, config, clock):
        return RealtimeMonitor(config, clock=clock)

    def _quiet_session(self):
        """Balanced books and small trades once a minute for five minutes"""
        messages = []
        for minute in range(5):
            messages.append(create_book_message(
                bids=[('0.49', '2000')], asks=[('0.51', '2000')], timestamp=at(minute * 60),
            ))
            messages.append(create_trade_message(
                price='0.50', size='200', timestamp=at(minute * 60 + 30),
            ))
        return messages

    def test_quiet_market_raises_nothing(self, monitor):
        alerts = []
        for message in self._quiet_session():
            alerts.extend(monitor.handle_message(message))

        assert alerts == []
        assert monitor.stats()['events'] == {'book': 5, 'trade': 5}

    def test_market_shock(self, monitor):
        received = []
        monitor.add_alert_callback(received.append)
        monitor.add_market_titles({'token123': 'Will the bill pass?'})

        for message in self._quiet_session():
            monitor.handle_message(message)

        # Aggressive buyer sweeps the book
        shock = [
            create_trade_message(price='0.62', size='12000', side='BUY', timestamp=at(330)),
            create_book_message(bids=[('0.61', '20000'), ('0.60', '5000')], asks=[('0.63', '800')],
                                timestamp=at(331)),
            create_trade_message(price='0.63', size='300', side='BUY', timestamp=at(332)),
        ]
        for message in shock:
            monitor.handle_message(message)

        types = [alert.type for alert in received]
        assert AlertType.WHALE_ENTRY in types
        assert AlertType.FLASH_MOVE in types
        assert AlertType.VOLUME_SPIKE in types
        assert AlertType.ORDERBOOK_IMBALANCE in types
        assert all(alert.market_title == 'Will the bill pass?' for alert in received)
        assert all(alert.direction in (Direction.BULLISH, Direction.NEUTRAL) for alert in received)

        # Cooldown keeps each condition to a single alert
        assert types.count(AlertType.FLASH_MOVE) == 1
        assert types.count(AlertType.VOLUME_SPIKE) == 1

    def test_cooldown_expires_on_event_time(self, monitor):
        first = monitor.handle_message(create_price_change_message(old_price=0.40, new_price=0.55, timestamp=at(0)))
        second = monitor.handle_message(create_price_change_message(old_price=0.55, new_price=0.70, timestamp=at(30)))
        third = monitor.handle_message(create_price_change_message(old_price=0.70, new_price=0.85, timestamp=at(61)))

        assert len(first) == 1
        assert second == []
        assert len(third) == 1

    def test_assets_are_independent(self, monitor):
        messages = [
            create_price_change_message(asset_id='a', timestamp=at(0)),
            create_price_change_message(asset_id='b', timestamp=at(0)),
            create_price_change_message(asset_id='a', timestamp=at(1)),
        ]

        alerts = [alert for message in messages for alert in monitor.handle_message(message)]

        assert [alert.asset_id for alert in alerts] == ['a', 'b']

    def test_malformed_lines_do_not_stop_stream(self, monitor):
        lines = ["not json\n", "\n", '{"type": "heartbeat"}\n']
        lines += to_ndjson([create_price_change_message(timestamp=at(0))])

        total = run_stream(monitor, lines, logging.getLogger("Main"))

        assert total == 1

    def test_run_stream_with_cleanup(self, monitor, clock):
        lines = to_ndjson(self._quiet_session())

        total = run_stream(monitor, lines, logging.getLogger("Main"))
        clock.advance(3 * 3600)
        run_stream(monitor, to_ndjson([create_trade_message(asset_id='other', timestamp=clock())]),
                   logging.getLogger("Main"))

        assert total == 0
        assert monitor.detector.tracked_assets() == ['other']

    def test_replay_behind_clock_keeps_baselines(self, config):
        clock = FakeClock(BASE_TIME + timedelta(days=1))
        monitor = RealtimeMonitor(config, clock=clock)
        received = []
        monitor.add_alert_callback(received.append)
        lines = to_ndjson(self._quiet_session() + [
            create_trade_message(price='0.62', size='12000', side='BUY', timestamp=at(330)),
        ])

        def replay():
            # Cleanup becomes due before every line
            for line in lines:
                clock.advance(61)
                yield line

        run_stream(monitor, replay(), logging.getLogger("Main"))

        assert AlertType.VOLUME_SPIKE in [alert.type for alert in received]
        assert monitor.detector.tracked_assets() == ['token123']

    def test_load_market_titles(self, tmp_path):
        titles_file = tmp_path / "titles.json"
        titles_file.write_text('{"token123": "Will it snow?"}')

        assert load_market_titles(str(titles_file)) == {'token123': 'Will it snow?'}
        assert load_market_titles(None) == {}
