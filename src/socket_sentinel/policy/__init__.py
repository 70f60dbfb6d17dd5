"""
The `policy` package decides what the operator should be told and which
sockets should be switched off automatically.

Key functionalities and components include:

- [`engine.py`](src/socket_sentinel/policy/engine.py): The `evaluate` function,
  which turns a snapshot into alerts (high power, abnormal activity, isolation)
  and load-balancing intents, deduplicated against the alerts already raised.
- [`alert_book.py`](src/socket_sentinel/policy/alert_book.py): The `AlertBook`
  holding the current alert list, shared between the monitor and the operator.
"""
