"""
Synthetic telemetry for the three-socket power strip.

Used whenever the device cannot be trusted or reached:
  - as the operator-selected data source (`Config.use_synthetic_data`)
  - as the fallback while the adapter sits in cooldown
  - as the defaults the normalizer back-fills missing records from

Values follow the ranges observed on the real hardware: mains voltage
between 210 and 240 V, currents up to 5 A, and a per-socket history band for
each of the three outlets. Reproducible when constructed with a seed.
"""
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

import numpy as np

from socket_sentinel.telemetry.models import (
    Config,
    SocketState,
    SystemSnapshot,
    SystemStatus,
    TelemetrySample,
)

SYNTHETIC_SOURCE_ADDRESS = "192.168.206.239"

VOLTAGE_RANGE = (210.0, 240.0)
CURRENT_RANGE = (0.1, 5.0)

# Power band (W) of each outlet in the generated history
SOCKET_POWER_RANGES: Tuple[Tuple[float, float], ...] = (
    (50.0, 300.0),
    (100.0, 400.0),
    (80.0, 350.0),
)

RELAY_ON_PROBABILITY = 0.8
ACTIVE_PROBABILITY = 0.7


class SyntheticDataGenerator:
    """Produces plausible snapshots for a strip of `len(SOCKET_POWER_RANGES)` sockets."""

    def __init__(
        self,
        seed: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._rng = np.random.default_rng(seed)
        self._clock = clock or (lambda: datetime.now().astimezone())

    @property
    def socket_ids(self) -> Tuple[int, ...]:
        return tuple(range(1, len(SOCKET_POWER_RANGES) + 1))

    def generate_socket(self, socket_id: int) -> SocketState:
        voltage = float(self._rng.uniform(*VOLTAGE_RANGE))
        current = float(self._rng.uniform(*CURRENT_RANGE))
        return SocketState(
            id=socket_id,
            name=f"Socket {socket_id}",
            relay_on=bool(self._rng.random() < RELAY_ON_PROBABILITY),
            voltage=round(voltage, 2),
            current=round(current, 3),
            power=round(voltage * current, 2),
            is_active=bool(self._rng.random() < ACTIVE_PROBABILITY),
        )

    def generate_status(self, total_power: float) -> SystemStatus:
        return SystemStatus(
            is_connected=True,
            is_isolated=False,
            isolation_reason=None,
            is_communication_blocked=False,
            last_updated=self._clock(),
            source_address=SYNTHETIC_SOURCE_ADDRESS,
            total_power=round(total_power, 2),
            abnormal_detected=False,
        )

    def generate_history(self, count: int = 60) -> Tuple[TelemetrySample, ...]:
        """One sample per minute, the newest one minute before now."""
        now = self._clock()
        samples = []
        for i in range(count):
            per_socket = tuple(
                round(float(self._rng.uniform(low, high)), 2)
                for low, high in SOCKET_POWER_RANGES
            )
            samples.append(
                TelemetrySample(
                    timestamp=now - timedelta(minutes=count - i),
                    total_power=round(sum(per_socket), 2),
                    per_socket=per_socket,
                )
            )
        return tuple(samples)

    def generate_snapshot(self, config: Optional[Config] = None, history_count: int = 60) -> SystemSnapshot:
        """Generates a complete snapshot; the total is the draw of the powered sockets."""
        sockets = tuple(self.generate_socket(socket_id) for socket_id in self.socket_ids)
        total_power = sum(s.power for s in sockets if s.relay_on)
        return SystemSnapshot(
            status=self.generate_status(total_power),
            sockets=sockets,
            history=self.generate_history(history_count),
            device_alerts=(),
            config=config or Config(),
        )
