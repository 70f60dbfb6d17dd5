"""
The `telemetry` package holds everything between the monitor and the power strip.

## Modules

- [models.py](models.py): Immutable pydantic records (sockets, status, config, samples, predictions, alerts, snapshots) with camelCase wire aliases.
- [errors.py](errors.py): The `SentinelError` exception hierarchy.
- [api_calls.py](api_calls.py): One function per HTTP endpoint of the device.
- [normalizer.py](normalizer.py): Validation and repair of raw payloads into snapshots.
- [synthetic.py](synthetic.py): Seedable generator of plausible snapshots.
- [adapter.py](adapter.py): The `TelemetryAdapter` failure/cooldown state machine and control operations.
- [config_store.py](config_store.py): YAML and in-memory persistence of the operator `Config`.
"""
