"""
Consul registry client

This package provides:
1. ConsulClient: HTTP client for agent service registration and the KV store
2. The error taxonomy shared by the client and the discovery wrapper
"""

from .consul import ConsulClient, normalize_address
from .errors import (
    BeaconError,
    ConfigError,
    DecodeError,
    NotFoundError,
    RegistrationError,
    RegistryRequestError,
    StoreError,
)

__all__ = [
    'ConsulClient',
    'normalize_address',
    'BeaconError',
    'ConfigError',
    'DecodeError',
    'NotFoundError',
    'RegistrationError',
    'RegistryRequestError',
    'StoreError',
]
