"""
The `util` package groups the general-purpose helpers used across Socket Sentinel.

- [`logging.py`](src/socket_sentinel/util/logging.py): the `LoggingUtil` logger
  factory, giving every module the same console format and a level driven by
  the `LOGLEVEL` environment variable.

- [`settings.py`](src/socket_sentinel/util/settings.py): the `Settings`
  dataclass holding the poll-loop knobs (device URL, cadence, timeouts,
  failure threshold, cooldown, window sizes), read from the environment.
"""
