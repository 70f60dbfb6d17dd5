"""Main application module for Socket Sentinel.

This module wires the core components together:
- The `Settings` read from the environment.
- The `YamlConfigStore` persisting the operator configuration.
- The `TelemetryAdapter` talking to the power strip.
- The `SentinelMonitor` running the poll loop on a background scheduler.

It then logs every published state and runs until the process receives
SIGINT or SIGTERM.
"""

import signal
import threading
from typing import Any

from socket_sentinel.real_time.monitor import MonitorState, SentinelMonitor
from socket_sentinel.telemetry.adapter import TelemetryAdapter
from socket_sentinel.telemetry.config_store import YamlConfigStore
from socket_sentinel.util.logging import LoggingUtil
from socket_sentinel.util.settings import Settings

logger = LoggingUtil.get_logger(__name__)


def log_state(state: MonitorState) -> None:
    """Subscriber printing a one-line summary of every monitoring cycle.

    Args:
        state: The `MonitorState` published by the monitor.
    """
    status = state.snapshot.status
    change = (
        f" ({state.power_change_pct:+.1f}%)" if state.power_change_pct is not None else ""
    )
    next_prediction = (
        f", next {state.predictions[0].predicted_power:.1f}W" if state.predictions else ""
    )
    logger.info(
        "Total %.1fW%s%s | sockets on: %s | alerts: %s%s%s",
        status.total_power,
        change,
        next_prediction,
        [s.id for s in state.snapshot.sockets if s.relay_on],
        len(state.alerts),
        " | ISOLATED" if status.is_isolated else "",
        " | synthetic data" if state.using_fallback else "",
    )


def main() -> None:
    """Main entry point for the Socket Sentinel monitor."""
    settings = Settings.from_env()
    config_store = YamlConfigStore(settings.config_path)
    adapter = TelemetryAdapter(settings, config_store)
    monitor = SentinelMonitor(adapter, settings)
    monitor.subscribe(log_state)

    stop_event = threading.Event()

    def _request_stop(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    monitor.start()
    try:
        stop_event.wait()
    finally:
        monitor.stop()


if __name__ == "__main__":
    main()
