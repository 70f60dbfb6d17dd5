"""
The `socket_sentinel` package monitors and protects a network-connected
multi-socket power strip.

It polls the strip controller over HTTP, repairs the often malformed telemetry
it returns, and keeps serving plausible synthetic data when the device stops
answering, so the operator view never goes blank. On top of the telemetry it
forecasts the total power draw for the next hour, raises alerts on high power,
abnormal activity and isolation, and switches off sockets idling on standby
while others are heavily loaded.

Sub-packages:
-------------
- `telemetry`:
  The data model, the HTTP calls to the device, the payload normalizer, the
  synthetic generator, the resilient `TelemetryAdapter` and the persistence
  of the operator configuration.

- `forecasting`:
  The moving-average + linear-trend power forecast and its correction with the
  latest measured total.

- `policy`:
  The rule engine deriving alerts and load-balancing intents from a snapshot,
  and the `AlertBook` holding the current alerts.

- `real_time`:
  The `SentinelMonitor` poll loop running on an APScheduler background
  scheduler.

- `util`:
  Logging and environment-driven settings.
"""
