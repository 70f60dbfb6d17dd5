"""This module implements the periodic monitoring loop of Socket Sentinel.

It defines the `SentinelMonitor` class, which registers a single interval job
on an APScheduler `BackgroundScheduler`. Each tick polls the adapter,
forecasts the total power, evaluates the alerting and load-balancing rules,
executes the resulting relay changes and publishes a `MonitorState` to the
subscribers. Ticks never overlap: the job runs with `max_instances=1`, and a
tick that fires while the previous cycle is still running is skipped and
logged.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import numpy as np
from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_MAX_INSTANCES,
    EVENT_JOB_MISSED,
    JobEvent,
)
from apscheduler.schedulers.background import BackgroundScheduler

from socket_sentinel.forecasting.forecaster import adjust, forecast
from socket_sentinel.policy.alert_book import AlertBook
from socket_sentinel.policy.engine import LoadBalanceThresholds, evaluate
from socket_sentinel.telemetry.adapter import TelemetryAdapter
from socket_sentinel.telemetry.errors import SentinelError
from socket_sentinel.telemetry.models import Alert, Prediction, SystemSnapshot
from socket_sentinel.util.logging import LoggingUtil
from socket_sentinel.util.settings import Settings

logger = LoggingUtil.get_logger(__name__)

POLL_JOB_ID = "sentinel-poll"


@dataclass(frozen=True)
class MonitorState:
    """Everything published after one monitoring cycle."""

    snapshot: SystemSnapshot
    predictions: List[Prediction] = field(default_factory=list)
    alerts: List[Alert] = field(default_factory=list)
    using_fallback: bool = False
    previous_total_power: Optional[float] = None
    power_change_pct: Optional[float] = None


Subscriber = Callable[[MonitorState], None]


class SentinelMonitor:
    """Drives the poll, forecast, evaluate, actuate and publish cycle.

    The monitor does not own any device state: it only combines the
    `TelemetryAdapter`, the forecaster and the policy engine, and keeps the
    `AlertBook` up to date.
    """

    def __init__(
        self,
        adapter: TelemetryAdapter,
        settings: Settings,
        alert_book: Optional[AlertBook] = None,
        scheduler: Optional[BackgroundScheduler] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initializes the monitor; nothing runs until `start` is called.

        Args:
            adapter: Source of snapshots and executor of relay changes.
            settings: Poll interval, forecast horizon and load-balancing limits.
            alert_book: The alert list shared with the operator.
            scheduler: Scheduler hosting the poll job, a new `BackgroundScheduler` by default.
            rng: Random generator used for the forecast jitter.
            clock: Timestamp source for the alerts.
        """
        self._adapter = adapter
        self._settings = settings
        self._alert_book = alert_book or AlertBook()
        self._scheduler = scheduler or BackgroundScheduler()
        self._rng = rng if rng is not None else np.random.default_rng(settings.simulation_seed)
        self._clock = clock
        self._thresholds = LoadBalanceThresholds(
            idle_power=settings.idle_power_threshold,
            high_load=settings.high_load_threshold,
        )

        self._subscribers: List[Subscriber] = []
        self._subscribers_lock = threading.Lock()
        self._state: Optional[MonitorState] = None
        self._previous_total_power: Optional[float] = None
        self._using_fallback: Optional[bool] = None

        self._scheduler.add_listener(
            self._job_listener, EVENT_JOB_ERROR | EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES
        )

    @property
    def alert_book(self) -> AlertBook:
        return self._alert_book

    @property
    def state(self) -> Optional[MonitorState]:
        """The state published by the last completed cycle."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._scheduler.running and self._scheduler.get_job(POLL_JOB_ID) is not None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Registers a callback invoked with every published `MonitorState`.

        Returns:
            A function removing the subscription.
        """
        with self._subscribers_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def start(self) -> None:
        """Schedules the poll job, the first cycle running immediately."""
        logger.info(
            "Starting Socket Sentinel monitor on %s every %ss",
            self._settings.api_url,
            self._settings.poll_interval_s,
        )
        self._scheduler.add_job(
            self.run_cycle,
            trigger="interval",
            seconds=self._settings.poll_interval_s,
            id=POLL_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now().astimezone(),
        )
        if not self._scheduler.running:
            self._scheduler.start()

    def stop(self) -> None:
        """Stops the poll job, waiting for a cycle in progress to complete."""
        if not self._scheduler.running:
            return
        logger.info("Stopping Socket Sentinel monitor")
        self._scheduler.shutdown(wait=True)

    def run_cycle(self) -> Optional[MonitorState]:
        """Runs one monitoring cycle.

        Errors are logged and swallowed so the next tick still runs.

        Returns:
            The published state, or None if the cycle failed.
        """
        try:
            state = self._cycle()
        except Exception:
            logger.error("Monitoring cycle failed", exc_info=True)
            return None

        self._publish(state)
        return state

    def _cycle(self) -> MonitorState:
        snapshot, using_fallback = self._adapter.poll()
        self._log_transition(using_fallback)

        config = self._adapter.config
        total_power = snapshot.status.total_power

        predictions: List[Prediction] = []
        if config.prediction_enabled:
            predictions = forecast(
                snapshot.history, self._settings.forecast_horizon_hours, self._rng
            )
            if total_power:
                predictions = adjust(predictions, total_power)

        result = None

        def apply_rules(alerts: List[Alert]) -> List[Alert]:
            nonlocal result
            result = evaluate(snapshot, alerts, config, self._thresholds, self._clock)
            return result.alerts

        alerts = self._alert_book.update(apply_rules)

        for intent in result.intents:
            try:
                self._adapter.set_relay(intent.socket_id, intent.desired)
            except SentinelError as ex:
                logger.error(
                    "Unable to switch socket %s %s: %s",
                    intent.socket_id,
                    "on" if intent.desired else "off",
                    ex,
                )
        if result.intents and self._adapter.last_snapshot is not None:
            snapshot = self._adapter.last_snapshot

        previous = self._previous_total_power
        change_pct = (total_power - previous) / previous * 100 if previous else None
        self._previous_total_power = total_power

        return MonitorState(
            snapshot=snapshot,
            predictions=predictions,
            alerts=alerts,
            using_fallback=using_fallback,
            previous_total_power=previous,
            power_change_pct=change_pct,
        )

    def _publish(self, state: MonitorState) -> None:
        self._state = state
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(state)
            except Exception:
                logger.error("Subscriber %r failed", callback, exc_info=True)

    def _log_transition(self, using_fallback: bool) -> None:
        if using_fallback == self._using_fallback:
            return
        if using_fallback:
            logger.warning(
                "Serving synthetic data (adapter mode: %s)", self._adapter.mode.value
            )
        elif self._using_fallback is not None:
            logger.info("Live telemetry restored from %s", self._settings.api_url)
        self._using_fallback = using_fallback

    def _job_listener(self, event: JobEvent) -> None:
        if event.job_id != POLL_JOB_ID:
            return
        if event.code == EVENT_JOB_MAX_INSTANCES:
            logger.warning("Previous monitoring cycle still running, tick skipped")
        elif event.code == EVENT_JOB_MISSED:
            logger.warning("Monitoring tick missed its run time")
        elif event.code == EVENT_JOB_ERROR:
            logger.error("Monitoring job raised: %s", getattr(event, "exception", None))
