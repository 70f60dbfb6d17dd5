"""
tests/conftest.py
─────────────────
Shared pytest fixtures for the Socket Sentinel test suite.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pytest

from socket_sentinel.telemetry.adapter import TelemetryAdapter
from socket_sentinel.telemetry.config_store import InMemoryConfigStore
from socket_sentinel.telemetry.models import (
    Config,
    SocketState,
    SystemSnapshot,
    SystemStatus,
    TelemetrySample,
)
from socket_sentinel.telemetry.synthetic import SyntheticDataGenerator
from socket_sentinel.util.settings import Settings

API_URL = "http://strip.test"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now) -> FakeClock:
    return FakeClock(now)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_url=API_URL,
        request_timeout_s=3.0,
        failure_threshold=3,
        cooldown_s=30.0,
        history_capacity=60,
        simulation_seed=42,
    )


@pytest.fixture
def generator(clock) -> SyntheticDataGenerator:
    return SyntheticDataGenerator(seed=42, clock=clock)


@pytest.fixture
def config_store() -> InMemoryConfigStore:
    return InMemoryConfigStore()


@pytest.fixture
def adapter(settings, config_store, generator, clock) -> TelemetryAdapter:
    return TelemetryAdapter(settings, config_store, generator=generator, clock=clock)


@pytest.fixture
def synthetic_adapter(settings, generator, clock) -> TelemetryAdapter:
    store = InMemoryConfigStore(Config(use_synthetic_data=True))
    return TelemetryAdapter(settings, store, generator=generator, clock=clock)


@pytest.fixture
def device_payload(now) -> Dict[str, Any]:
    """A well-formed /api/system body as sent by the firmware."""
    return {
        "systemStatus": {
            "isConnected": True,
            "isIsolated": False,
            "isolationReason": None,
            "isCommunicationBlocked": False,
            "lastUpdated": now.isoformat(),
            "ipAddress": "192.168.1.100",
            "totalPower": 450.0,
            "abnormalDetected": False,
        },
        "sockets": [
            {"id": 1, "name": "Desk", "status": True, "voltage": 230.0, "current": 1.0, "power": 230.0, "isActive": True},
            {"id": 2, "name": "Heater", "status": True, "voltage": 220.0, "current": 1.0, "power": 220.0, "isActive": True},
            {"id": 3, "name": "Lamp", "status": False, "voltage": 0.0, "current": 0.0, "power": 0.0, "isActive": False},
        ],
        "powerHistory": [],
        "alerts": [],
        "config": {
            "adminPassword": "admin123",
            "allowedIPs": ["192.168.1.100"],
            "highPowerThreshold": 1000,
            "autoLoadBalance": True,
            "predictionEnabled": True,
            "mockDataEnabled": False,
        },
    }


def make_snapshot(
    now: datetime,
    sockets: Sequence[SocketState] = (),
    total_power: Optional[float] = None,
    config: Optional[Config] = None,
    **status_fields: Any,
) -> SystemSnapshot:
    """Builds a snapshot; the total defaults to the draw of the powered sockets."""
    if total_power is None:
        total_power = sum(s.power for s in sockets if s.relay_on)
    return SystemSnapshot(
        status=SystemStatus(last_updated=now, is_connected=True, total_power=total_power, **status_fields),
        sockets=tuple(sockets),
        config=config or Config(),
    )


def make_history(now: datetime, totals: Sequence[float]) -> tuple:
    """One sample per minute, the last one at `now`."""
    count = len(totals)
    return tuple(
        TelemetrySample(
            timestamp=now - timedelta(minutes=count - 1 - i),
            total_power=float(total),
            per_socket=(float(total), 0.0, 0.0),
        )
        for i, total in enumerate(totals)
    )
