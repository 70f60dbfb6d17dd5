"""This module turns raw device payloads into fully-populated `SystemSnapshot` records.

The device firmware is not trustworthy: bodies arrive truncated, several
responses get concatenated on a flaky link, records lose fields, and the power
history is sometimes double-encoded as a JSON string. `normalize` absorbs all
of that and reports what it managed to do through a tagged `NormalizeResult`:

- `ok`: the body decoded as a JSON object; missing records were back-filled.
- `recovered`: the body was not a JSON object, but power samples could be
  extracted from it; everything else comes from the defaults.
- `unusable`: nothing could be salvaged. The adapter counts this exactly like
  a transport failure.

The function is pure: the same raw input and defaults always give the same
result.
"""

import json
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from numbers import Real
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from socket_sentinel.telemetry.models import (
    SocketState,
    SystemSnapshot,
    TelemetrySample,
    WireModel,
)
from socket_sentinel.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

SAMPLE_TOTAL_FIELD = "total"
SAMPLE_SOCKET_FIELDS = ("socket1", "socket2", "socket3")

# A flat array of flat objects, and a single flat object
_ARRAY_PATTERN = re.compile(r"\[\s*\{[^\[\]]*\}\s*\]")
_OBJECT_PATTERN = re.compile(r"\{[^{}\[\]]*\}")

RawPayload = Union[Mapping[str, Any], str, bytes, bytearray, None]


class NormalizeStatus(str, Enum):
    OK = "ok"
    RECOVERED = "recovered"
    UNUSABLE = "unusable"


@dataclass(frozen=True)
class NormalizeResult:
    status: NormalizeStatus
    snapshot: Optional[SystemSnapshot] = None
    detail: str = ""

    @property
    def usable(self) -> bool:
        return self.snapshot is not None


def normalize(raw: RawPayload, defaults: SystemSnapshot) -> NormalizeResult:
    """Validates and repairs a raw payload into a canonical snapshot.

    Args:
        raw: The decoded JSON object, or the raw response body (text or bytes).
        defaults: The snapshot providing fallback records, normally the output
                  of the synthetic generator.

    Returns:
        A `NormalizeResult`. Its snapshot is None only when the status is
        `unusable`.
    """
    payload, status, detail = _decode(raw)
    if payload is None:
        logger.debug("Unusable payload: %s", detail)
        return NormalizeResult(NormalizeStatus.UNUSABLE, None, detail)

    snapshot = _build_snapshot(payload, defaults)
    if status is NormalizeStatus.RECOVERED:
        logger.info("Recovered %s power samples from a malformed payload", len(snapshot.history))
    return NormalizeResult(status, snapshot, detail)


def recover_history(text: str) -> List[Dict[str, Any]]:
    """Best-effort extraction of power samples from a non-JSON body.

    Embedded arrays of sample objects are tried first, each parsed in
    isolation; when none yields a valid sample, the individual flat objects
    carrying the per-socket fields are collected instead (this covers a
    history array cut in the middle).

    Returns:
        The valid samples, as raw dictionaries, in the order they appear.
    """
    for match in _ARRAY_PATTERN.finditer(text):
        try:
            candidate = json.loads(match.group(0))
        except ValueError:
            continue
        samples = [item for item in candidate if is_valid_sample(item)]
        if samples:
            return samples

    samples = []
    for match in _OBJECT_PATTERN.finditer(text):
        fragment = match.group(0)
        if not all(f'"{field}"' in fragment for field in SAMPLE_SOCKET_FIELDS):
            continue
        try:
            candidate = json.loads(fragment)
        except ValueError:
            continue
        if is_valid_sample(candidate):
            samples.append(candidate)
    return samples


def is_valid_sample(item: Any) -> bool:
    """Shape check of one history entry; partial entries are rejected, never repaired."""
    if not isinstance(item, Mapping):
        return False
    if _parse_timestamp(item.get("timestamp")) is None:
        return False
    return all(
        _is_number(item.get(field)) for field in (SAMPLE_TOTAL_FIELD, *SAMPLE_SOCKET_FIELDS)
    )


def _decode(raw: RawPayload) -> Tuple[Optional[Mapping[str, Any]], NormalizeStatus, str]:
    if raw is None:
        return None, NormalizeStatus.UNUSABLE, "empty payload"
    if isinstance(raw, Mapping):
        return raw, NormalizeStatus.OK, ""
    if isinstance(raw, (bytes, bytearray)):
        text = bytes(raw).decode("utf-8", errors="replace")
    elif isinstance(raw, str):
        text = raw
    else:
        return None, NormalizeStatus.UNUSABLE, f"unsupported payload type {type(raw).__name__}"

    if not text.strip():
        return None, NormalizeStatus.UNUSABLE, "empty payload"

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as ex:
        detail = f"invalid JSON ({ex.msg} at position {ex.pos})"
    except ValueError as ex:
        # Integers beyond the interpreter's digit limit
        detail = f"invalid JSON ({ex})"
    else:
        if isinstance(decoded, Mapping):
            return decoded, NormalizeStatus.OK, ""
        detail = f"top-level {type(decoded).__name__} instead of an object"

    samples = recover_history(text)
    if samples:
        return (
            {"powerHistory": samples},
            NormalizeStatus.RECOVERED,
            f"{detail}; recovered {len(samples)} samples",
        )
    return None, NormalizeStatus.UNUSABLE, detail


def _build_snapshot(payload: Mapping[str, Any], defaults: SystemSnapshot) -> SystemSnapshot:
    sockets = _merge_sockets(payload.get("sockets"), defaults.sockets)

    raw_status = payload.get("systemStatus")
    status = _merge_record(raw_status, defaults.status, "systemStatus")
    if isinstance(raw_status, Mapping) and "total_power" not in type(status).canonicalize(raw_status):
        # Keep the total consistent with the sockets actually reported
        status = status.model_copy(
            update={"total_power": round(sum(s.power for s in sockets if s.relay_on), 2)}
        )

    config = _merge_record(payload.get("config"), defaults.config, "config")

    raw_alerts = payload.get("alerts")
    device_alerts = (
        tuple(dict(alert) for alert in raw_alerts if isinstance(alert, Mapping))
        if isinstance(raw_alerts, list)
        else ()
    )

    return SystemSnapshot(
        status=status,
        sockets=sockets,
        history=_parse_history(payload.get("powerHistory")),
        device_alerts=device_alerts,
        config=config,
    )


def _merge_record(partial: Any, default: WireModel, label: str) -> Any:
    if partial is None:
        return default
    if not isinstance(partial, Mapping):
        logger.warning("Ignoring %s of type %s, using defaults", label, type(partial).__name__)
        return default
    patch = type(default).canonicalize(partial)
    try:
        return default.merged(patch)
    except ValidationError as ex:
        invalid = {str(error["loc"][0]) for error in ex.errors() if error["loc"]}
        logger.warning("Discarding malformed %s fields %s", label, sorted(invalid))
    except OverflowError:
        logger.warning("Discarding %s with out-of-range numbers, using defaults", label)
        return default

    try:
        return default.merged({k: v for k, v in patch.items() if k not in invalid})
    except (ValidationError, OverflowError):
        logger.warning("Discarding malformed %s, using defaults", label)
        return default


def _merge_sockets(
    raw_sockets: Any, defaults: Tuple[SocketState, ...]
) -> Tuple[SocketState, ...]:
    if not isinstance(raw_sockets, list) or not raw_sockets:
        return defaults

    defaults_by_id = {s.id: s for s in defaults}
    sockets: List[SocketState] = []
    seen_ids = set()

    for index, entry in enumerate(raw_sockets):
        positional = defaults[index] if index < len(defaults) else None
        if not isinstance(entry, Mapping):
            socket = positional
        else:
            socket_id = _parse_socket_id(entry.get("id"))
            if socket_id is None and positional is not None:
                socket_id = positional.id
            if socket_id is None:
                continue
            template = defaults_by_id.get(socket_id) or SocketState(
                id=socket_id, name=f"Socket {socket_id}"
            )
            socket = _merge_record({**entry, "id": socket_id}, template, f"socket {socket_id}")

        if socket is None or socket.id in seen_ids:
            continue
        seen_ids.add(socket.id)
        sockets.append(socket)

    return tuple(sockets) if sockets else defaults


def _parse_history(raw_history: Any) -> Tuple[TelemetrySample, ...]:
    if isinstance(raw_history, str):
        try:
            raw_history = json.loads(raw_history)
        except ValueError:
            logger.warning("powerHistory is a string but not valid JSON, ignoring it")
            return ()
    if not isinstance(raw_history, list):
        return ()

    samples: Dict[datetime, TelemetrySample] = {}
    for item in raw_history:
        if not is_valid_sample(item):
            continue
        timestamp = _parse_timestamp(item["timestamp"])
        samples[timestamp] = TelemetrySample(
            timestamp=timestamp,
            total_power=float(item[SAMPLE_TOTAL_FIELD]),
            per_socket=tuple(float(item[field]) for field in SAMPLE_SOCKET_FIELDS),
        )

    dropped = len(raw_history) - len(samples)
    if dropped:
        logger.debug("Dropped %s malformed or duplicated power samples", dropped)
    return tuple(samples[timestamp] for timestamp in sorted(samples))


def _parse_socket_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        timestamp = value
    elif isinstance(value, str) and value:
        try:
            timestamp = datetime.fromisoformat(value)
        except ValueError:
            return None
    else:
        return None
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def _is_number(value: Any) -> bool:
    if not isinstance(value, Real) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # An integer too large for a float
        return False
