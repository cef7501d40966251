"""
Alert cooldown registry
"""
from datetime import datetime, timedelta
from threading import Lock
from typing import Dict, Optional, Tuple

from activity_engine.detection.models import AlertType

CooldownKey = Tuple[AlertType, str]


class CooldownRegistry:
    """Last-fired time per (alert type, asset id).

    Only emitted alerts refresh an entry; a suppressed alert leaves it as is.
    A cooldown of zero disables suppression.
    """

    def __init__(self, cooldown_seconds: float):
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self._lock = Lock()
        self._last_fired: Dict[CooldownKey, datetime] = {}

    @property
    def enabled(self) -> bool:
        return self.cooldown > timedelta(0)

    def is_active(self, alert_type: AlertType, asset_id: str, now: datetime) -> bool:
        if not self.enabled:
            return False
        with self._lock:
            last = self._last_fired.get((alert_type, asset_id))
        if last is None:
            return False
        return now - last < self.cooldown

    def record(self, alert_type: AlertType, asset_id: str, fired_at: datetime):
        with self._lock:
            self._last_fired[(alert_type, asset_id)] = fired_at

    def last_fired(self, alert_type: AlertType, asset_id: str) -> Optional[datetime]:
        with self._lock:
            return self._last_fired.get((alert_type, asset_id))

    def forget(self, asset_id: str, now: Optional[datetime] = None) -> int:
        """Drop entries for an asset; with now, only those no longer active"""
        with self._lock:
            expired = [
                key for key, last in self._last_fired.items()
                if key[1] == asset_id and (now is None or now - last >= self.cooldown)
            ]
            for key in expired:
                del self._last_fired[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_fired)
