"""Exception hierarchy of the telemetry adapter and its control operations.

Transport-level problems (`TransportError`, `MalformedPayloadError`) stay
inside the adapter: they feed the failure counter and are never raised out of
`poll()`. The remaining errors are surfaced to the caller of a control
operation, which decides how to present them.
"""


class SentinelError(Exception):
    """Base class for every error raised by Socket Sentinel."""


class TransportError(SentinelError):
    """Timeout, connection refusal or non-2xx response from the device."""


class MalformedPayloadError(TransportError):
    """The device answered, but nothing usable could be recovered from the body."""


class AuthError(SentinelError):
    """A privileged control operation was refused."""


class InvalidSecretError(AuthError):
    """The supplied admin secret does not match the configured one."""


class ActuationError(SentinelError):
    """A control operation could not be applied."""


class UnreachableError(ActuationError):
    """The device could not be reached; the requested change was not applied."""


class UnknownSocketError(ActuationError):
    """The requested socket id is not part of the current snapshot."""


class ConfigError(SentinelError):
    """A configuration patch failed validation."""
