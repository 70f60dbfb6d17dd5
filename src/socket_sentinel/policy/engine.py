"""This module derives alerts and automatic actions from a snapshot.

`evaluate` is a pure function: it never touches the device, it only returns
the alerts to publish and the relay changes (`ActuationIntent`) the monitor
should carry out. Each rule raises at most one alert per `Alert.dedup_key`:
an alert is not raised again while one with the same category (and socket)
is still in the book.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set, Tuple

from socket_sentinel.telemetry.models import (
    Alert,
    AlertCategory,
    AlertSeverity,
    Config,
    SocketState,
    SystemSnapshot,
)
from socket_sentinel.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

DEFAULT_ISOLATION_REASON = "Manual isolation"

HIGH_POWER_MESSAGE = (
    "High power usage detected: {total:.1f}W exceeds threshold of {threshold:g}W. "
    "Consider increasing power production or reducing consumption."
)
ABNORMAL_ACTIVITY_MESSAGE = (
    "Abnormal system activity detected. Communication has been blocked for security. "
    "Reset required."
)
ISOLATION_MESSAGE = "System isolated: {reason}. Administrator action required."
AUTO_BALANCE_MESSAGE = (
    "Auto-balancing: Socket {socket_id} turned off to balance load. "
    "It was inactive but consuming standby power."
)


@dataclass(frozen=True)
class LoadBalanceThresholds:
    """Power limits (W) used by the load-balancing rule.

    Attributes:
        idle_power: Below this draw, a powered but inactive socket is on standby.
        high_load: Above this draw, a socket counts as heavily loaded.
    """

    idle_power: float = 10.0
    high_load: float = 100.0


@dataclass(frozen=True)
class ActuationIntent:
    socket_id: int
    desired: bool
    reason: str = ""


@dataclass(frozen=True)
class PolicyResult:
    alerts: List[Alert] = field(default_factory=list)
    intents: List[ActuationIntent] = field(default_factory=list)


def evaluate(
    snapshot: SystemSnapshot,
    existing_alerts: Iterable[Alert],
    config: Config,
    thresholds: Optional[LoadBalanceThresholds] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> PolicyResult:
    """Applies the alerting and load-balancing rules to a snapshot.

    Rules, in order:
        1. Total power above `config.high_power_threshold` while not isolated:
           `warning` alert.
        2. Abnormal activity reported: `error` alert (the communication block
           itself is latched by the adapter).
        3. System isolated: `error` alert with the isolation reason.
        4. With `config.auto_load_balance` and while not isolated, when at
           least one socket is heavily loaded, every powered socket idling on
           standby gets an `info` alert and an intent to switch it off.

    Args:
        snapshot: The snapshot produced by the current poll.
        existing_alerts: Alerts currently in the book; used for deduplication.
        config: The configuration in effect.
        thresholds: Load-balancing limits, defaults to `LoadBalanceThresholds()`.
        clock: Timestamp source for the new alerts.

    Returns:
        A `PolicyResult` with the full alert list, new alerts first, followed
        by the existing ones, and the intents to execute.
    """
    thresholds = thresholds or LoadBalanceThresholds()
    now = (clock or (lambda: datetime.now().astimezone()))()
    existing = list(existing_alerts)
    status = snapshot.status

    raised: List[Alert] = []
    intents: List[ActuationIntent] = []
    active_keys: Set[Tuple[AlertCategory, Optional[int]]] = {a.dedup_key for a in existing}

    def raise_once(
        category: AlertCategory,
        severity: AlertSeverity,
        message: str,
        socket_id: Optional[int] = None,
    ) -> bool:
        if (category, socket_id) in active_keys:
            return False
        alert = Alert.create(category, severity, message, now, socket_id)
        active_keys.add(alert.dedup_key)
        raised.append(alert)
        logger.info("Alert raised [%s] %s", severity.value, message)
        return True

    if status.total_power > config.high_power_threshold and not status.is_isolated:
        raise_once(
            AlertCategory.HIGH_POWER,
            AlertSeverity.WARNING,
            HIGH_POWER_MESSAGE.format(total=status.total_power, threshold=config.high_power_threshold),
        )

    if status.abnormal_detected:
        raise_once(AlertCategory.ABNORMAL_ACTIVITY, AlertSeverity.ERROR, ABNORMAL_ACTIVITY_MESSAGE)

    if status.is_isolated:
        raise_once(
            AlertCategory.ISOLATION,
            AlertSeverity.ERROR,
            ISOLATION_MESSAGE.format(reason=status.isolation_reason or DEFAULT_ISOLATION_REASON),
        )

    if config.auto_load_balance and not status.is_isolated:
        for socket in _sockets_to_balance(snapshot.sockets, thresholds):
            message = AUTO_BALANCE_MESSAGE.format(socket_id=socket.id)
            if raise_once(AlertCategory.AUTO_BALANCE, AlertSeverity.INFO, message, socket.id):
                intents.append(ActuationIntent(socket.id, False, message))

    return PolicyResult(alerts=list(reversed(raised)) + existing, intents=intents)


def _sockets_to_balance(
    sockets: Iterable[SocketState], thresholds: LoadBalanceThresholds
) -> List[SocketState]:
    sockets = list(sockets)
    idle = [
        s for s in sockets
        if s.relay_on and s.power < thresholds.idle_power and not s.is_active
    ]
    heavily_loaded = [s for s in sockets if s.relay_on and s.power > thresholds.high_load]
    return idle if idle and heavily_loaded else []
