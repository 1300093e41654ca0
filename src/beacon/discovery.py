"""Service registration lifecycle and KV helpers on top of ConsulClient."""

import json
import sys
from typing import Any, Callable, Dict, Optional

from .config import RegistrationConfig, format_duration
from .metadata import collect_metadata
from .registry import ConsulClient, DecodeError, NotFoundError, StoreError


# ---------------------------------------------------------------------------
# Value codecs
# ---------------------------------------------------------------------------

class RawCodec:
    """Bytes in, bytes out."""

    def encode(self, value: Any) -> bytes:
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"raw values must be bytes, got {type(value).__name__}")
        return bytes(value)

    def decode(self, data: bytes) -> bytes:
        return data


class JsonCodec:
    """JSON documents, optionally built into *shape*.

    When *shape* is given, decoded objects are passed as keyword arguments
    (``shape(**obj)``) and anything else positionally (``shape(obj)``).
    """

    def __init__(self, shape: Optional[Callable[..., Any]] = None):
        self.shape = shape

    def encode(self, value: Any) -> bytes:
        return json.dumps(value).encode()

    def decode(self, data: bytes) -> Any:
        obj = json.loads(data)
        if self.shape is None:
            return obj
        if isinstance(obj, dict):
            return self.shape(**obj)
        return self.shape(obj)


RAW = RawCodec()
JSON = JsonCodec()


def get_value(client: ConsulClient, key: str, codec=JSON) -> Any:
    """Read *key* and decode it with *codec*.

    Raises NotFoundError if the key is absent or its value is empty, and
    DecodeError if the codec rejects the stored bytes.
    """
    data = client.kv_get(key)
    if not data:
        raise NotFoundError(key)
    try:
        return codec.decode(data)
    except (ValueError, TypeError) as exc:
        raise DecodeError(key, str(exc)) from exc


def put_value(client: ConsulClient, key: str, value: Any, codec=RAW) -> None:
    """Encode *value* with *codec* (raw bytes by default) and write it to *key*."""
    try:
        data = codec.encode(value)
    except (ValueError, TypeError) as exc:
        raise StoreError(f"cannot encode value for {key!r}: {exc}") from exc
    client.kv_put(key, data)


# ---------------------------------------------------------------------------
# ServiceDiscovery
# ---------------------------------------------------------------------------

class ServiceDiscovery:
    """Registers one service instance with the registry and wraps its KV store.

    The client is built at construction and never replaced; every method is a
    single blocking round trip with no retries.
    """

    def __init__(self, config: RegistrationConfig):
        config.validate()
        self.config = config
        self._client = ConsulClient(
            config.registry_address, token=config.token, timeout=config.timeout,
        )

    @classmethod
    def create(
        cls,
        server_name: str,
        listen_addr: str,
        listen_port: int,
        interval: int = 10,
        deregister_after: int = 10,
        health_endpoint: str = "ok",
        registry_address: str = "",
        **kwargs,
    ) -> "ServiceDiscovery":
        config = RegistrationConfig(
            server_name=server_name,
            listen_addr=listen_addr,
            listen_port=listen_port,
            interval=interval,
            deregister_after=deregister_after,
            health_endpoint=health_endpoint,
            registry_address=registry_address,
            **kwargs,
        )
        return cls(config)

    @property
    def service_id(self) -> str:
        return self.config.service_id

    @property
    def client(self) -> ConsulClient:
        return self._client

    def build_registration(self, metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Build the agent service registration payload, including its HTTP check."""
        cfg = self.config
        if metadata is None:
            metadata = collect_metadata()
        tags = [cfg.server_name] + [t for t in cfg.tags if t != cfg.server_name]
        return {
            "ID": cfg.service_id,
            "Name": cfg.server_name,
            "Tags": tags,
            "Port": cfg.listen_port,
            "Address": cfg.listen_addr,
            "Check": {
                "HTTP": cfg.health_url,
                "Interval": format_duration(cfg.interval),
                "DeregisterCriticalServiceAfter": format_duration(cfg.deregister_after * 60),
            },
            "Meta": metadata,
        }

    def register(self) -> None:
        """Register this instance; raises RegistrationError if the registry refuses."""
        registration = self.build_registration()
        self._client.agent_service_register(registration)
        print(
            f"[beacon] registered {self.service_id} with {self._client.base_url}"
            f" (check {registration['Check']['HTTP']} every {registration['Check']['Interval']})",
            file=sys.stderr,
        )

    def deregister(self) -> None:
        """Remove this instance, keyed by the same identity used at registration."""
        self._client.agent_service_deregister(self.service_id)
        print(f"[beacon] deregistered {self.service_id}", file=sys.stderr)

    def get_value(self, key: str, codec=JSON) -> Any:
        return get_value(self._client, key, codec=codec)

    def put_value(self, key: str, value: Any, codec=RAW) -> None:
        put_value(self._client, key, value, codec=codec)
