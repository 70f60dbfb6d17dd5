"""This module provides the HTTP calls to the power strip controller.

Each function maps to one endpoint of the device firmware and performs
exactly one request, bounded by a timeout. There is no retry here: the next
scheduled poll is the retry. Errors are raised as `requests` exceptions and
translated by the `TelemetryAdapter`, which owns the failure accounting.
"""

from typing import Any, Dict, Mapping

import requests

from socket_sentinel.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

SYSTEM_ENDPOINT = "/api/system"
RELAY_ENDPOINT = "/api/relay"
ISOLATION_ENDPOINT = "/api/isolation"
CONFIG_ENDPOINT = "/api/config"
RESET_ENDPOINT = "/api/reset"


def get_system_state(api_url: str, timeout: float) -> str:
    """Retrieves the full system state from the device.

    The body is returned undecoded: the device regularly answers with
    truncated or concatenated JSON, which the normalizer knows how to salvage.

    Args:
        api_url: Base URL of the device (e.g. http://192.168.1.100).
        timeout: Maximum number of seconds to wait for the response.

    Returns:
        The raw response body.

    Raises:
        requests.exceptions.RequestException: On timeout, connection failure
            or a non-2xx status code.
    """
    response = requests.get(f"{api_url}{SYSTEM_ENDPOINT}", timeout=timeout)
    response.raise_for_status()
    logger.debug("System state retrieved from %s: %s", api_url, response.text)
    return response.text


def write_relay(api_url: str, socket_id: int, status: bool, timeout: float) -> Dict[str, Any]:
    """Switches the relay of one socket.

    Args:
        api_url: Base URL of the device.
        socket_id: The id of the socket to switch.
        status: True to power the socket, False to cut it.
        timeout: Maximum number of seconds to wait for the response.

    Returns:
        The decoded acknowledgement sent back by the device (may be empty).

    Raises:
        requests.exceptions.RequestException: If the request fails.
    """
    return _post(api_url, RELAY_ENDPOINT, {"socketId": socket_id, "status": status}, timeout)


def write_isolation(api_url: str, status: bool, secret: str, timeout: float) -> Dict[str, Any]:
    """Engages or releases the isolation relay that disconnects every socket.

    Raises:
        requests.exceptions.RequestException: If the request fails. A refused
            secret comes back as an HTTP 401/403 error.
    """
    return _post(api_url, ISOLATION_ENDPOINT, {"status": status, "secret": secret}, timeout)


def write_config(api_url: str, patch: Mapping[str, Any], timeout: float) -> Dict[str, Any]:
    """Sends a partial configuration update to the device.

    Raises:
        requests.exceptions.RequestException: If the request fails.
    """
    return _post(api_url, CONFIG_ENDPOINT, dict(patch), timeout)


def write_reset(api_url: str, secret: str, timeout: float) -> Dict[str, Any]:
    """Clears the communication block raised by the firmware after abnormal activity.

    Raises:
        requests.exceptions.RequestException: If the request fails.
    """
    return _post(api_url, RESET_ENDPOINT, {"secret": secret}, timeout)


def _post(api_url: str, endpoint: str, body: Dict[str, Any], timeout: float) -> Dict[str, Any]:
    response = requests.post(f"{api_url}{endpoint}", json=body, timeout=timeout)
    response.raise_for_status()  # Raise an error for bad responses (4xx, 5xx)
    try:
        acknowledgement = response.json()
    except ValueError:
        return {}
    return acknowledgement if isinstance(acknowledgement, dict) else {"result": acknowledgement}
