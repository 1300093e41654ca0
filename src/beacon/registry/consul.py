#!/usr/bin/env python3
"""
Minimal Consul HTTP API client

This module provides:
- ConsulClient: agent service register/deregister and KV get/put over the
  registry's HTTP/JSON API
- normalize_address: turns ``host:port`` or a URL into a base URL
"""

import base64
import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Optional, Type

from .errors import ConfigError, RegistrationError, RegistryRequestError, StoreError


def normalize_address(address: str) -> str:
    """Return ``scheme://host:port`` for a registry address.

    Accepts a bare ``host:port`` (assumed plain HTTP) or a full
    ``http(s)://`` URL. Raises ConfigError for anything else.
    """
    address = address.strip()
    if not address:
        raise ConfigError("registry address is empty")
    if "://" not in address:
        address = f"http://{address}"

    parsed = urllib.parse.urlsplit(address)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigError(f"invalid registry address: {address!r}")
    try:
        parsed.port
    except ValueError:
        raise ConfigError(f"invalid port in registry address: {address!r}") from None
    return f"{parsed.scheme}://{parsed.netloc}"


class ConsulClient:
    """Thin HTTP client for the agent service and KV endpoints."""

    def __init__(self, address: str, token: Optional[str] = None, timeout: float = 10):
        self._base = normalize_address(address)
        self._token = token
        self._timeout = timeout
        # The agent is usually local or on the cluster network, never behind http_proxy.
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    @property
    def base_url(self) -> str:
        return self._base

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[bytes] = None,
        error: Type[RegistryRequestError] = RegistryRequestError,
        action: str = "registry request failed",
    ) -> bytes:
        url = f"{self._base}{path}"
        headers = {}
        if self._token:
            headers["X-Consul-Token"] = self._token
        req = urllib.request.Request(url, data=data, method=method, headers=headers)
        try:
            with self._opener.open(req, timeout=self._timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as exc:
            body = exc.read().decode(errors="replace")
            raise error(action, status=exc.code, body=body) from exc
        except (urllib.error.URLError, OSError) as exc:
            reason = getattr(exc, "reason", exc)
            raise error(f"{action}: {reason}") from exc

    # ------------------------------------------------------------------
    # Agent service endpoints
    # ------------------------------------------------------------------

    def agent_service_register(self, registration: Dict[str, Any]) -> None:
        body = json.dumps(registration).encode()
        self._request(
            "PUT", "/v1/agent/service/register", data=body,
            error=RegistrationError,
            action=f"registering {registration.get('ID')!r} failed",
        )

    def agent_service_deregister(self, service_id: str) -> None:
        path = "/v1/agent/service/deregister/" + urllib.parse.quote(service_id, safe="")
        self._request(
            "PUT", path,
            error=RegistrationError,
            action=f"deregistering {service_id!r} failed",
        )

    # ------------------------------------------------------------------
    # KV endpoints
    # ------------------------------------------------------------------

    @staticmethod
    def _kv_path(key: str) -> str:
        return "/v1/kv/" + urllib.parse.quote(key.lstrip("/"), safe="/")

    def kv_get(self, key: str) -> Optional[bytes]:
        """Return the raw value stored at *key*, or None if the key does not exist.

        A key that exists with a null value returns ``b""``.
        """
        try:
            body = self._request(
                "GET", self._kv_path(key),
                error=StoreError, action=f"reading {key!r} failed",
            )
        except StoreError as exc:
            if exc.status == 404:
                return None
            raise

        try:
            entries = json.loads(body)
            value = entries[0].get("Value")
            if value is None:
                return b""
            return base64.b64decode(value, validate=True)
        except (ValueError, LookupError, AttributeError, TypeError) as exc:
            raise StoreError(f"unexpected KV response for {key!r}: {exc}") from exc

    def kv_put(self, key: str, value: bytes) -> None:
        body = self._request(
            "PUT", self._kv_path(key), data=value,
            error=StoreError, action=f"writing {key!r} failed",
        )
        if body.strip() != b"true":
            raise StoreError(
                f"registry refused write to {key!r}: {body.decode(errors='replace').strip()}"
            )
