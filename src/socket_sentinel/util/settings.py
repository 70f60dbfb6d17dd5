"""Process settings loaded from environment variables.

These are the knobs of the poll loop itself (endpoint, cadence, timeouts,
failure threshold, window sizes). The operator-facing `Config` record lives
in `socket_sentinel.telemetry.models` and is persisted separately through a
`ConfigStore`.
"""

import os
from dataclasses import dataclass
from typing import Optional

from socket_sentinel.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value.strip())
    except ValueError:
        logger.warning("Invalid value %r for %s, using default %s", value, name, default)
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        logger.warning("Invalid value %r for %s, using default %s", value, name, default)
        return default


@dataclass(frozen=True)
class Settings:
    # Device endpoint
    api_url: str = "http://192.168.1.100"
    request_timeout_s: float = 3.0

    # Poll loop
    poll_interval_s: float = 5.0
    failure_threshold: int = 3
    cooldown_s: float = 30.0
    history_capacity: int = 60

    # Forecasting
    forecast_horizon_hours: float = 1.0

    # Load balancing
    idle_power_threshold: float = 10.0
    high_load_threshold: float = 100.0

    # Persisted operator configuration
    config_path: str = "sentinel_config.yaml"

    # Synthetic data (None draws a fresh seed)
    simulation_seed: Optional[int] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Builds a `Settings` instance from the process environment.

        Unset variables keep the class defaults; malformed numbers are logged
        and replaced by the default rather than aborting start-up.
        """
        seed = os.getenv("SIMULATION_SEED")
        return cls(
            api_url=os.getenv("SENTINEL_API_URL", cls.api_url).rstrip("/"),
            request_timeout_s=_env_float("REQUEST_TIMEOUT", cls.request_timeout_s),
            poll_interval_s=_env_float("POLL_INTERVAL", cls.poll_interval_s),
            failure_threshold=max(1, _env_int("FAILURE_THRESHOLD", cls.failure_threshold)),
            cooldown_s=_env_float("COOLDOWN_INTERVAL", cls.cooldown_s),
            history_capacity=max(2, _env_int("HISTORY_CAPACITY", cls.history_capacity)),
            forecast_horizon_hours=_env_float(
                "FORECAST_HORIZON_HOURS", cls.forecast_horizon_hours
            ),
            idle_power_threshold=_env_float("IDLE_POWER_THRESHOLD", cls.idle_power_threshold),
            high_load_threshold=_env_float("HIGH_LOAD_THRESHOLD", cls.high_load_threshold),
            config_path=os.getenv("SENTINEL_CONFIG_PATH", cls.config_path),
            simulation_seed=_env_int("SIMULATION_SEED", 0) if seed is not None else None,
        )
