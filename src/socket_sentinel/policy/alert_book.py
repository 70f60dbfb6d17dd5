"""Thread-safe holder of the alerts currently shown to the operator."""

import threading
from typing import Callable, Iterable, List

from socket_sentinel.telemetry.models import Alert
from socket_sentinel.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)


class AlertBook:
    """The current alert list, newest first.

    The monitor updates the whole list after each evaluation while operators
    clear or acknowledge individual alerts from another thread. Clearing an
    alert is what allows the policy engine to raise it again.
    """

    def __init__(self, alerts: Iterable[Alert] = ()) -> None:
        self._lock = threading.Lock()
        self._alerts: List[Alert] = list(alerts)

    @property
    def alerts(self) -> List[Alert]:
        with self._lock:
            return list(self._alerts)

    @property
    def active_count(self) -> int:
        """Number of alerts not acknowledged yet."""
        with self._lock:
            return sum(1 for alert in self._alerts if not alert.acknowledged)

    def replace(self, alerts: Iterable[Alert]) -> None:
        with self._lock:
            self._alerts = list(alerts)

    def update(self, fn: Callable[[List[Alert]], Iterable[Alert]]) -> List[Alert]:
        """Replaces the alerts with `fn(current alerts)`.

        `fn` runs without holding the lock, so it may take its time. The
        operator actions it races with still win: an alert cleared while `fn`
        was running stays cleared, and an acknowledgement made meanwhile is
        kept on the alert `fn` returned.

        Args:
            fn: Receives a copy of the current alerts and returns the new list.

        Returns:
            The alerts stored once the update is done.
        """
        with self._lock:
            before = list(self._alerts)
        proposed = list(fn(list(before)))

        with self._lock:
            seen_ids = {alert.id for alert in before}
            current = {alert.id: alert for alert in self._alerts}
            self._alerts = [
                current.get(alert.id, alert)
                for alert in proposed
                if alert.id in current or alert.id not in seen_ids
            ]
            return list(self._alerts)

    def clear(self, alert_id: str) -> bool:
        """Removes one alert.

        Returns:
            False if no alert has this id.
        """
        with self._lock:
            remaining = [alert for alert in self._alerts if alert.id != alert_id]
            removed = len(remaining) != len(self._alerts)
            self._alerts = remaining
        if removed:
            logger.info("Alert %s cleared", alert_id)
        return removed

    def clear_all(self) -> None:
        with self._lock:
            count = len(self._alerts)
            self._alerts = []
        logger.info("%s alerts cleared", count)

    def acknowledge(self, alert_id: str) -> bool:
        """Marks one alert as seen; it stays in the book and keeps deduplicating.

        Returns:
            False if no alert has this id.
        """
        with self._lock:
            for index, alert in enumerate(self._alerts):
                if alert.id == alert_id:
                    self._alerts[index] = alert.model_copy(update={"acknowledged": True})
                    return True
        return False
