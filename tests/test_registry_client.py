"""Tests for the Consul HTTP client."""

import pytest

from beacon.registry import (
    ConfigError,
    ConsulClient,
    RegistrationError,
    StoreError,
    normalize_address,
)


@pytest.mark.parametrize("address, expected", [
    ("127.0.0.1:8500", "http://127.0.0.1:8500"),
    ("consul.service:8500", "http://consul.service:8500"),
    ("http://127.0.0.1:8500", "http://127.0.0.1:8500"),
    ("https://consul.example.com/", "https://consul.example.com"),
    ("  localhost:8500  ", "http://localhost:8500"),
])
def test_normalize_address(address, expected):
    assert normalize_address(address) == expected


@pytest.mark.parametrize("address", ["", "ftp://host:21", "http://", "host:notaport"])
def test_normalize_address_rejects(address):
    with pytest.raises(ConfigError):
        normalize_address(address)


def test_kv_get_missing_key_returns_none(consul_agent):
    client = ConsulClient(consul_agent.address)
    assert client.kv_get("missing") is None


def test_kv_get_null_value_returns_empty_bytes(consul_agent):
    consul_agent.kv["folder/"] = None
    client = ConsulClient(consul_agent.address)
    assert client.kv_get("folder/") == b""


def test_kv_put_and_get_nested_key(consul_agent):
    client = ConsulClient(consul_agent.address)
    client.kv_put("config/miner/window", b"42")
    assert consul_agent.kv["config/miner/window"] == b"42"
    assert client.kv_get("/config/miner/window") == b"42"


def test_kv_put_refused(consul_agent):
    consul_agent.kv_put_result = "false"
    client = ConsulClient(consul_agent.address)
    with pytest.raises(StoreError):
        client.kv_put("k", b"v")


def test_kv_get_server_error(consul_agent):
    consul_agent.fail_with = (500, "boom")
    client = ConsulClient(consul_agent.address)
    with pytest.raises(StoreError) as excinfo:
        client.kv_get("k")
    assert excinfo.value.status == 500
    assert "boom" in str(excinfo.value)


def test_token_is_sent(consul_agent):
    client = ConsulClient(consul_agent.address, token="s3cret")
    client.kv_get("anything")
    assert consul_agent.tokens == ["s3cret"]


def test_no_token_header_by_default(consul_agent):
    client = ConsulClient(consul_agent.address)
    client.kv_get("anything")
    assert consul_agent.tokens == [None]


def test_unreachable_registry_raises_registration_error(closed_port):
    client = ConsulClient(f"127.0.0.1:{closed_port}", timeout=2)
    with pytest.raises(RegistrationError) as excinfo:
        client.agent_service_register({"ID": "x", "Name": "x"})
    assert excinfo.value.status is None


def test_unreachable_registry_raises_store_error(closed_port):
    client = ConsulClient(f"127.0.0.1:{closed_port}", timeout=2)
    with pytest.raises(StoreError):
        client.kv_get("k")


def test_kv_get_malformed_base64_is_store_error(consul_agent, monkeypatch):
    client = ConsulClient(consul_agent.address)
    monkeypatch.setattr(client, "_request", lambda *a, **kw: b'[{"Key": "k", "Value": "!!!notb64"}]')
    with pytest.raises(StoreError):
        client.kv_get("k")
