"""Errors raised by the registry client and the discovery wrapper."""

from typing import Optional


class BeaconError(Exception):
    """Base class for beacon errors."""


class ConfigError(BeaconError):
    """Malformed or missing configuration."""


class RegistryRequestError(BeaconError):
    """A registry call failed; carries the HTTP status and body when there was a response."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        if status is not None:
            message = f"{message} (HTTP {status}: {body.strip() or 'no body'})"
        super().__init__(message)
        self.status = status
        self.body = body


class RegistrationError(RegistryRequestError):
    """The registry rejected a register or deregister call."""


class StoreError(RegistryRequestError):
    """A KV read or write failed at the transport or registry level."""


class NotFoundError(BeaconError):
    """The KV key is absent or holds an empty value."""

    def __init__(self, key: str):
        super().__init__(f"key {key!r} not found or empty")
        self.key = key


class DecodeError(BeaconError):
    """Stored bytes could not be decoded into the requested shape."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"cannot decode value of {key!r}: {reason}")
        self.key = key
        self.reason = reason
