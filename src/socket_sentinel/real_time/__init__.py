"""
The `real_time` module runs the periodic monitoring loop of Socket Sentinel.

Key functionalities and components include:

- [`monitor.py`](src/socket_sentinel/real_time/monitor.py): This submodule defines the `SentinelMonitor` class,
  which schedules the poll job on an APScheduler background scheduler. Each cycle
  polls the power strip through the telemetry adapter, forecasts the total power,
  raises deduplicated alerts, switches off standby sockets when auto-balancing is
  enabled, and publishes a `MonitorState` to its subscribers.
"""
