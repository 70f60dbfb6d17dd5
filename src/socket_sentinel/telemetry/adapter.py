"""This module implements the resilient link between the monitor and the power strip.

It defines the `TelemetryAdapter` class, which owns everything that depends on
the health of the network link: the failure counter, the cooldown timer, the
switch to synthetic data, the rolling power history and the latched
isolation/communication-block flags. It also exposes the four control
operations (relay, isolation, communication reset, configuration update),
which are forwarded to the device when it is reachable and simulated locally
otherwise.

The adapter moves between three modes:

- `live`: every poll performs one bounded HTTP request.
- `cooldown`: entered after `failure_threshold` consecutive failures. Until
  `retry_at`, polls return synthetic data without touching the network. The
  first poll after `retry_at` tries the device again; success returns to
  `live`, failure re-arms the timer.
- `synthetic`: selected by the operator through `Config.use_synthetic_data`.
  No network I/O at all.
"""

import hmac
import threading
from collections import deque
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Deque, Dict, Mapping, Optional, Tuple

import requests
from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from socket_sentinel.telemetry import api_calls
from socket_sentinel.telemetry.config_store import ConfigStore
from socket_sentinel.telemetry.errors import (
    ConfigError,
    InvalidSecretError,
    MalformedPayloadError,
    TransportError,
    UnknownSocketError,
    UnreachableError,
)
from socket_sentinel.telemetry.models import (
    Ack,
    Config,
    SocketState,
    SystemSnapshot,
    SystemStatus,
    TelemetrySample,
)
from socket_sentinel.telemetry.normalizer import NormalizeResult, normalize
from socket_sentinel.telemetry.synthetic import SyntheticDataGenerator
from socket_sentinel.util.logging import LoggingUtil
from socket_sentinel.util.settings import Settings

logger = LoggingUtil.get_logger(__name__)

MANUAL_ISOLATION_REASON = "Manual isolation"
DEVICE_ISOLATION_REASON = "Isolated by device"


class AdapterMode(str, Enum):
    LIVE = "live"
    COOLDOWN = "cooldown"
    SYNTHETIC = "synthetic"


class TelemetryAdapter:
    """Fetches, normalizes and caches the state of the power strip.

    All mutable state lives on the instance and is guarded by a single
    re-entrant lock, so a poll committing its snapshot and a control
    operation updating a socket can never interleave. Network I/O always
    happens outside that lock. Polls are additionally serialized among
    themselves: the failure counter and cooldown timer assume one writer.
    """

    def __init__(
        self,
        settings: Settings,
        config_store: ConfigStore,
        generator: Optional[SyntheticDataGenerator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initializes the adapter in `live` mode with an empty history.

        Args:
            settings: Endpoint, timeout, failure threshold, cooldown and window size.
            config_store: Storage of the operator configuration, read now and
                          after every successful `update_config`.
            generator: Source of synthetic snapshots (a seeded one makes tests
                       deterministic).
            clock: Returns the current aware datetime; injectable for tests.
        """
        self._settings = settings
        self._config_store = config_store
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._generator = generator or SyntheticDataGenerator(
            settings.simulation_seed, self._clock
        )

        self._state_lock = threading.RLock()
        self._poll_lock = threading.Lock()

        self._config: Config = config_store.load()
        self._consecutive_failures = 0
        self._retry_at: Optional[datetime] = None
        self._history: Deque[TelemetrySample] = deque(maxlen=settings.history_capacity)
        self._last_snapshot: Optional[SystemSnapshot] = None
        self._last_live_snapshot: Optional[SystemSnapshot] = None

        # Operator commands simulated while offline, replayed on synthetic snapshots
        self._relay_overrides: Dict[int, bool] = {}

        # Latched until an authenticated operation clears them
        self._isolated = False
        self._isolation_reason: Optional[str] = None
        self._abnormal_detected = False
        self._communication_blocked = False

    # region read-only state

    @property
    def mode(self) -> AdapterMode:
        with self._state_lock:
            return self._mode_at(self._clock())

    @property
    def config(self) -> Config:
        with self._state_lock:
            return self._config

    @property
    def last_snapshot(self) -> Optional[SystemSnapshot]:
        with self._state_lock:
            return self._last_snapshot

    @property
    def consecutive_failures(self) -> int:
        with self._state_lock:
            return self._consecutive_failures

    @property
    def retry_at(self) -> Optional[datetime]:
        with self._state_lock:
            return self._retry_at

    # endregion

    def poll(self) -> Tuple[SystemSnapshot, bool]:
        """Runs one poll cycle.

        Returns:
            A tuple `(snapshot, using_fallback)`. `using_fallback` is False
            only for a snapshot freshly fetched from the device. A failed
            fetch below the threshold returns the last live snapshot (marked
            disconnected), or synthetic data when there is none yet. The
            snapshot always carries a status, sockets and a config.
        """
        with self._poll_lock:
            now = self._clock()
            with self._state_lock:
                mode = self._mode_at(now)

            if mode is AdapterMode.SYNTHETIC:
                return self._synthetic_poll(connected=True), True

            if mode is AdapterMode.COOLDOWN:
                logger.debug("Cooldown active until %s, serving synthetic data", self._retry_at)
                return self._synthetic_poll(connected=False), True

            try:
                result = self._fetch()
            except TransportError as ex:
                return self._on_failure(now, ex)
            return self._on_success(result), False

    def set_relay(self, socket_id: int, desired: bool) -> Ack:
        """Switches the relay of one socket.

        Args:
            socket_id: The socket to switch.
            desired: True to power the socket, False to cut it.

        Returns:
            An `Ack`; `simulated` tells whether the device was actually contacted.

        Raises:
            UnknownSocketError: If the socket id is not part of the current snapshot.
            UnreachableError: If the device could not be reached in `live` mode.
                              The cached socket state is left untouched.
        """
        with self._state_lock:
            mode = self._mode_at(self._clock())
            known_ids = (
                {s.id for s in self._last_snapshot.sockets}
                if self._last_snapshot is not None
                else set(self._generator.socket_ids)
            )
        if socket_id not in known_ids:
            raise UnknownSocketError(f"Socket {socket_id} does not exist")

        if mode is AdapterMode.LIVE:
            detail = self._forward(api_calls.write_relay, socket_id, desired)
        else:
            detail = {"id": socket_id, "status": desired}

        with self._state_lock:
            if mode is not AdapterMode.LIVE:
                self._relay_overrides[socket_id] = desired
            self._update_last_snapshot(
                sockets=lambda sockets: tuple(
                    s.model_copy(update={"relay_on": desired}) if s.id == socket_id else s
                    for s in sockets
                )
            )

        logger.info("Socket %s turned %s (%s)", socket_id, "on" if desired else "off", mode.value)
        return Ack(operation="set_relay", simulated=mode is not AdapterMode.LIVE, detail=detail)

    def set_isolation(self, desired: bool, secret: str) -> Ack:
        """Engages or releases the isolation relay.

        Raises:
            InvalidSecretError: If the secret is refused; nothing is changed.
            UnreachableError: If the device could not be reached in `live` mode.
        """
        with self._state_lock:
            mode = self._mode_at(self._clock())

        if mode is AdapterMode.LIVE:
            detail = self._forward(api_calls.write_isolation, desired, secret)
        else:
            self._check_secret(secret)
            detail = {"status": desired}

        with self._state_lock:
            self._isolated = desired
            self._isolation_reason = MANUAL_ISOLATION_REASON if desired else None
            self._update_last_snapshot(status=self._apply_latched_flags)

        logger.warning("System isolation %s (%s)", "engaged" if desired else "released", mode.value)
        return Ack(operation="set_isolation", simulated=mode is not AdapterMode.LIVE, detail=detail)

    def reset_communication(self, secret: str) -> Ack:
        """Clears the communication block latched after abnormal activity.

        Raises:
            InvalidSecretError: If the secret is refused; nothing is changed.
            UnreachableError: If the device could not be reached in `live` mode.
        """
        with self._state_lock:
            mode = self._mode_at(self._clock())

        if mode is AdapterMode.LIVE:
            detail = self._forward(api_calls.write_reset, secret)
        else:
            self._check_secret(secret)
            detail = {"message": "Communication reset successfully"}

        with self._state_lock:
            self._abnormal_detected = False
            self._communication_blocked = False
            self._update_last_snapshot(status=self._apply_latched_flags)

        logger.info("Communication reset (%s)", mode.value)
        return Ack(
            operation="reset_communication", simulated=mode is not AdapterMode.LIVE, detail=detail
        )

    def update_config(self, patch: Mapping[str, Any]) -> Config:
        """Applies a partial configuration update.

        The patch may use Python or wire (camelCase) field names. The merged
        configuration is validated, forwarded to the device in `live` mode,
        saved to the config store and read back from it.

        Returns:
            The configuration now in effect.

        Raises:
            ConfigError: If the merged configuration is invalid; nothing is changed.
            UnreachableError: If the device could not be reached in `live` mode.
        """
        with self._state_lock:
            mode = self._mode_at(self._clock())
            current = self._config

        changed_fields = Config.canonicalize(patch)
        try:
            candidate = current.merged(changed_fields)
        except ValidationError as ex:
            raise ConfigError(f"Invalid configuration: {ex}") from ex

        if mode is AdapterMode.LIVE:
            wire = candidate.to_wire()
            device_patch = {to_camel(name): wire[to_camel(name)] for name in changed_fields}
            self._forward(api_calls.write_config, device_patch)

        self._config_store.save(candidate)
        with self._state_lock:
            self._config = self._config_store.load()
            self._update_last_snapshot(config=lambda _: self._config)
            config = self._config

        logger.info("Configuration updated: %s", sorted(changed_fields))
        return config

    # region poll internals

    def _mode_at(self, now: datetime) -> AdapterMode:
        if self._config.use_synthetic_data:
            return AdapterMode.SYNTHETIC
        if self._retry_at is not None and now < self._retry_at:
            return AdapterMode.COOLDOWN
        return AdapterMode.LIVE

    def _fetch(self) -> NormalizeResult:
        try:
            body = api_calls.get_system_state(
                self._settings.api_url, self._settings.request_timeout_s
            )
        except requests.RequestException as ex:
            raise TransportError(str(ex)) from ex

        with self._state_lock:
            defaults = self._defaults()
        result = normalize(body, defaults)
        if not result.usable:
            raise MalformedPayloadError(result.detail)
        return result

    def _defaults(self) -> SystemSnapshot:
        if self._last_live_snapshot is not None:
            return self._last_live_snapshot
        return self._generator.generate_snapshot(self._config, history_count=0)

    def _on_success(self, result: NormalizeResult) -> SystemSnapshot:
        with self._state_lock:
            if self._consecutive_failures:
                logger.info(
                    "Device %s reachable again after %s failed attempts",
                    self._settings.api_url,
                    self._consecutive_failures,
                )
            self._consecutive_failures = 0
            self._retry_at = None
            self._relay_overrides.clear()

            snapshot = result.snapshot
            snapshot = snapshot.model_copy(
                update={"status": snapshot.status.model_copy(update={"is_connected": True})}
            )
            snapshot = self._commit(snapshot)
            self._last_live_snapshot = snapshot
            return snapshot

    def _on_failure(self, now: datetime, error: TransportError) -> Tuple[SystemSnapshot, bool]:
        threshold = self._settings.failure_threshold
        with self._state_lock:
            self._consecutive_failures += 1
            failures = self._consecutive_failures

            if failures >= threshold:
                self._retry_at = now + timedelta(seconds=self._settings.cooldown_s)
                logger.warning(
                    "Device %s failed %s consecutive times (%s), serving synthetic data until %s",
                    self._settings.api_url,
                    failures,
                    error,
                    self._retry_at.isoformat(),
                )
                return self._synthetic_poll(connected=False), True

            logger.warning(
                "Failed to fetch system state (%s/%s): %s", failures, threshold, error
            )
            if self._last_live_snapshot is None:
                return self._synthetic_poll(connected=False), True

            cached = self._last_live_snapshot
            status = cached.status.model_copy(update={"is_connected": False})
            snapshot = cached.model_copy(update={"status": self._apply_latched_flags(status)})
            self._last_snapshot = snapshot
            return snapshot, True

    def _synthetic_poll(self, connected: bool) -> SystemSnapshot:
        with self._state_lock:
            history_count = 0 if self._history else self._settings.history_capacity
            snapshot = self._generator.generate_snapshot(self._config, history_count=history_count)

            sockets = tuple(self._apply_simulated_relays(s) for s in snapshot.sockets)
            status = snapshot.status.model_copy(
                update={
                    "is_connected": connected,
                    "total_power": round(sum(s.power for s in sockets if s.relay_on), 2),
                }
            )
            return self._commit(snapshot.model_copy(update={"sockets": sockets, "status": status}))

    def _apply_simulated_relays(self, socket: SocketState) -> SocketState:
        relay_on = self._relay_overrides.get(socket.id, socket.relay_on) and not self._isolated
        if relay_on:
            return socket
        return socket.model_copy(update={"relay_on": False, "current": 0.0, "power": 0.0})

    def _commit(self, snapshot: SystemSnapshot) -> SystemSnapshot:
        """Latches flags, advances the history window and caches the snapshot.

        Must be called with the state lock held.
        """
        status = snapshot.status
        if status.is_isolated and not self._isolated:
            self._isolated = True
            self._isolation_reason = status.isolation_reason or DEVICE_ISOLATION_REASON
            logger.warning("Device reports isolation: %s", self._isolation_reason)
        if status.abnormal_detected and not self._abnormal_detected:
            self._abnormal_detected = True
            logger.warning("Abnormal activity detected, communication blocked until reset")
        if (status.abnormal_detected or status.is_communication_blocked) and not self._communication_blocked:
            self._communication_blocked = True
        status = self._apply_latched_flags(status)

        if snapshot.history:
            self._history.clear()
            self._history.extend(snapshot.history)
        else:
            self._history.append(
                TelemetrySample(
                    timestamp=status.last_updated,
                    total_power=status.total_power,
                    per_socket=tuple(s.power for s in snapshot.sockets),
                )
            )

        snapshot = snapshot.model_copy(
            update={"status": status, "history": tuple(self._history), "config": self._config}
        )
        self._last_snapshot = snapshot
        return snapshot

    def _apply_latched_flags(self, status: SystemStatus) -> SystemStatus:
        return status.model_copy(
            update={
                "is_isolated": self._isolated,
                "isolation_reason": self._isolation_reason if self._isolated else None,
                "abnormal_detected": self._abnormal_detected,
                "is_communication_blocked": self._communication_blocked,
            }
        )

    def _update_last_snapshot(self, **updaters: Callable[[Any], Any]) -> None:
        # Must be called with the state lock held
        if self._last_snapshot is None:
            return
        self._last_snapshot = self._last_snapshot.model_copy(
            update={
                field: updater(getattr(self._last_snapshot, field))
                for field, updater in updaters.items()
            }
        )

    # endregion

    # region control internals

    def _check_secret(self, secret: str) -> None:
        with self._state_lock:
            expected = self._config.admin_secret
        if not hmac.compare_digest(str(secret).encode(), expected.encode()):
            logger.warning("Rejected control operation: invalid admin secret")
            raise InvalidSecretError("Invalid admin secret")

    def _forward(self, call: Callable[..., Dict[str, Any]], *args: Any) -> Dict[str, Any]:
        try:
            return call(self._settings.api_url, *args, self._settings.request_timeout_s)
        except requests.HTTPError as ex:
            status_code = ex.response.status_code if ex.response is not None else None
            if status_code in (401, 403):
                logger.warning("Device refused the admin secret (HTTP %s)", status_code)
                raise InvalidSecretError("Invalid admin secret") from ex
            logger.error("Device rejected %s with HTTP %s", call.__name__, status_code)
            raise UnreachableError(f"Device answered HTTP {status_code}") from ex
        except requests.RequestException as ex:
            logger.error("Device unreachable during %s: %s", call.__name__, ex)
            raise UnreachableError(f"Device unreachable: {ex}") from ex

    # endregion
