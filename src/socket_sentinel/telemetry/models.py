"""Data model shared by the telemetry adapter, the forecaster and the policy engine.

Every record is an immutable pydantic model: the adapter publishes new copies
(`model_copy(update=...)`) instead of mutating state in place. Python
attributes use snake_case while the device speaks camelCase JSON, so each
model accepts both spellings (plus the legacy names used by the first
firmware, e.g. `status` for the relay flag or `ipAddress` for the source
address) and serializes back to camelCase with `to_wire()`.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

DEFAULT_ADMIN_SECRET = "admin123"
DEFAULT_ALLOWED_SOURCES = frozenset({"192.168.1.100", "127.0.0.1"})
DEFAULT_HIGH_POWER_THRESHOLD = 1000.0


def _wire_field(default: Any, name: str, *legacy: str, **kwargs: Any) -> Any:
    """Declares a field that also accepts the legacy firmware spelling(s)."""
    return Field(
        default,
        validation_alias=AliasChoices(name, to_camel(name), *legacy),
        serialization_alias=to_camel(name),
        **kwargs,
    )


class WireModel(BaseModel):
    """Base class for records exchanged with the device."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    @classmethod
    def canonicalize(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Maps any accepted spelling of a field to its Python name.

        Keys that do not belong to the model are dropped. This is what makes
        partial records mergeable over defaults regardless of which spelling
        the device (or an operator patch) used.
        """
        lookup: Dict[str, str] = {}
        for field_name, field_info in cls.model_fields.items():
            lookup[field_name] = field_name
            lookup[to_camel(field_name)] = field_name
            if isinstance(field_info.validation_alias, AliasChoices):
                for choice in field_info.validation_alias.choices:
                    if isinstance(choice, str):
                        lookup[choice] = field_name

        canonical: Dict[str, Any] = {}
        for key, value in data.items():
            field_name = lookup.get(str(key))
            if field_name is not None:
                canonical[field_name] = value
        return canonical

    def merged(self, patch: Mapping[str, Any]):
        """Returns a validated copy of this record with `patch` applied on top."""
        values = self.model_dump()
        values.update(self.canonicalize(patch))
        return type(self).model_validate(values)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SocketState(WireModel):
    id: int
    name: str = ""
    relay_on: bool = _wire_field(False, "relay_on", "status")
    voltage: float = 0.0
    current: float = 0.0
    power: float = 0.0
    is_active: bool = False


class SystemStatus(WireModel):
    is_connected: bool = False
    is_isolated: bool = False
    isolation_reason: Optional[str] = None
    is_communication_blocked: bool = False
    last_updated: datetime
    source_address: str = _wire_field("", "source_address", "ipAddress")
    total_power: float = 0.0
    abnormal_detected: bool = False


class Config(WireModel):
    """Operator configuration, persisted by a `ConfigStore`."""

    admin_secret: str = _wire_field(DEFAULT_ADMIN_SECRET, "admin_secret", "adminPassword")
    allowed_sources: FrozenSet[str] = _wire_field(
        DEFAULT_ALLOWED_SOURCES, "allowed_sources", "allowedIPs"
    )
    high_power_threshold: float = Field(DEFAULT_HIGH_POWER_THRESHOLD, ge=0.0)
    auto_load_balance: bool = True
    prediction_enabled: bool = True
    use_synthetic_data: bool = _wire_field(False, "use_synthetic_data", "mockDataEnabled")

    @field_serializer("allowed_sources")
    def _serialize_sources(self, sources: FrozenSet[str]) -> list:
        return sorted(sources)


class TelemetrySample(BaseModel):
    """One point of the power history: total and per-socket power at a timestamp."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    total_power: float
    per_socket: Tuple[float, ...]

    def to_wire(self) -> Dict[str, Any]:
        wire: Dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "total": self.total_power,
        }
        for index, power in enumerate(self.per_socket, start=1):
            wire[f"socket{index}"] = power
        return wire


class Prediction(WireModel):
    timestamp: datetime
    predicted_power: float = _wire_field(..., "predicted_power", "predicted")
    actual_power: Optional[float] = _wire_field(None, "actual_power", "actual")


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class AlertCategory(str, Enum):
    HIGH_POWER = "high-power"
    ABNORMAL_ACTIVITY = "abnormal-activity"
    ISOLATION = "isolation"
    AUTO_BALANCE = "auto-balance"


class Alert(WireModel):
    id: str
    category: AlertCategory
    severity: AlertSeverity
    message: str
    timestamp: datetime
    socket_id: Optional[int] = None
    acknowledged: bool = False

    @classmethod
    def create(
        cls,
        category: AlertCategory,
        severity: AlertSeverity,
        message: str,
        timestamp: datetime,
        socket_id: Optional[int] = None,
    ) -> "Alert":
        """Builds an alert whose id starts with its category (and socket id)."""
        prefix = category.value if socket_id is None else f"{category.value}-{socket_id}"
        return cls(
            id=f"{prefix}-{uuid.uuid4()}",
            category=category,
            severity=severity,
            message=message,
            timestamp=timestamp,
            socket_id=socket_id,
        )

    @property
    def dedup_key(self) -> Tuple[AlertCategory, Optional[int]]:
        return (self.category, self.socket_id)


class SystemSnapshot(BaseModel):
    """Normalized, fully-populated state produced by one poll cycle."""

    model_config = ConfigDict(frozen=True)

    status: SystemStatus
    sockets: Tuple[SocketState, ...]
    history: Tuple[TelemetrySample, ...] = ()
    device_alerts: Tuple[Dict[str, Any], ...] = ()
    config: Config

    def socket(self, socket_id: int) -> Optional[SocketState]:
        return next((s for s in self.sockets if s.id == socket_id), None)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "systemStatus": self.status.to_wire(),
            "sockets": [s.to_wire() for s in self.sockets],
            "powerHistory": [sample.to_wire() for sample in self.history],
            "alerts": list(self.device_alerts),
            "config": self.config.to_wire(),
        }


class Ack(BaseModel):
    """Acknowledgement of an accepted control operation."""

    model_config = ConfigDict(frozen=True)

    operation: str
    simulated: bool
    detail: Dict[str, Any] = Field(default_factory=dict)
