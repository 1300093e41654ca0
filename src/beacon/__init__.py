"""beacon: Consul service registration and KV helpers."""

__version__ = "0.1.0"
