"""CLI entry point for beacon."""

import argparse
import json
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Mapping, Optional

from .config import (
    REGISTRY_ADDRESS_ENV,
    REGISTRY_TOKEN_ENV,
    RegistrationConfig,
    load_config,
    merge_cli_args,
    parse_listen_address,
)
from .discovery import JSON, RAW, ServiceDiscovery, get_value, put_value
from .health import start_health_server
from .registry import BeaconError, ConfigError, ConsulClient


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def resolve_registry_address(explicit: Optional[str], environ: Mapping[str, str] = os.environ) -> str:
    """Return the explicit registry address, falling back to the environment."""
    if explicit:
        return explicit
    address = environ.get(REGISTRY_ADDRESS_ENV, "")
    if not address:
        raise ConfigError(
            f"no registry address: pass --consul-url or set {REGISTRY_ADDRESS_ENV}"
        )
    return address


def init_consul(consul_url: str, service_name: str, ip_port: str) -> ServiceDiscovery:
    """Parse *ip_port*, register *service_name* and return the handle.

    Any failure is reported on stderr and terminates the process.
    """
    try:
        host, port = parse_listen_address(ip_port)
        sd = ServiceDiscovery.create(
            service_name, host, port,
            interval=10, deregister_after=10, health_endpoint="ok",
            registry_address=resolve_registry_address(consul_url),
        )
        sd.register()
    except BeaconError as exc:
        _fail(str(exc))
    return sd


def _add_registry_args(parser: argparse.ArgumentParser) -> None:
    """Add the flags every subcommand needs to reach the registry."""
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument(
        "--consul-url", type=str, dest="registry_address",
        help=f"Registry address, host:port or URL (default: ${REGISTRY_ADDRESS_ENV})",
    )
    parser.add_argument(
        "--token", type=str,
        help=f"ACL token sent with every request (default: ${REGISTRY_TOKEN_ENV})",
    )
    parser.add_argument(
        "--timeout", type=float,
        help="Per-request timeout in seconds (default: 10)",
    )


def _add_service_args(parser: argparse.ArgumentParser) -> None:
    """Add the flags that identify the service instance."""
    _add_registry_args(parser)
    parser.add_argument("--name", type=str, dest="server_name", help="Service name")
    parser.add_argument(
        "--address", type=str, dest="ip_port", metavar="HOST:PORT",
        help="Advertised address of this instance",
    )
    parser.add_argument(
        "--interval", type=int,
        help="Health check interval in seconds (default: 10)",
    )
    parser.add_argument(
        "--deregister-after", type=int, dest="deregister_after",
        help="Minutes a failing instance stays in the catalog (default: 10)",
    )
    parser.add_argument(
        "--endpoint", type=str, dest="health_endpoint",
        help="Health check path on HOST:PORT (default: ok)",
    )
    parser.add_argument(
        "--tag", action="append", dest="tags",
        help="Extra tag for the registration (repeatable)",
    )


def _build_config(args) -> RegistrationConfig:
    """Build a RegistrationConfig from a config file, CLI overrides and the environment."""
    if args.config:
        config = load_config(args.config)
    else:
        config = RegistrationConfig()
    merge_cli_args(config, args)

    ip_port = getattr(args, "ip_port", None)
    if ip_port is not None:
        config.listen_addr, config.listen_port = parse_listen_address(ip_port)

    config.registry_address = resolve_registry_address(config.registry_address)
    if not config.token:
        config.token = os.environ.get(REGISTRY_TOKEN_ENV) or None
    return config


def _build_discovery(args) -> ServiceDiscovery:
    try:
        return ServiceDiscovery(_build_config(args))
    except BeaconError as exc:
        _fail(str(exc))


def _build_client(args) -> ConsulClient:
    try:
        config = _build_config(args)
        return ConsulClient(config.registry_address, token=config.token, timeout=config.timeout)
    except BeaconError as exc:
        _fail(str(exc))


def _wait_for_shutdown() -> None:
    """Block until SIGINT or SIGTERM."""
    stop = threading.Event()

    def _handler(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
    while not stop.is_set():
        stop.wait(1)


def cmd_register(args) -> None:
    """Register this instance, optionally serving its health endpoint until stopped."""
    sd = _build_discovery(args)

    if args.dry_run:
        print(json.dumps(sd.build_registration(), indent=2))
        return

    server = None
    if args.serve:
        cfg = sd.config
        try:
            server = start_health_server(
                host=args.bind, port=cfg.listen_port, endpoint=cfg.health_endpoint,
            )
        except OSError as exc:
            _fail(f"cannot serve health endpoint on {args.bind}:{cfg.listen_port}: {exc}")
        print(
            f"[health] serving /{cfg.health_endpoint.strip('/')} on {args.bind}:{cfg.listen_port}",
            file=sys.stderr,
        )

    try:
        sd.register()
    except BeaconError as exc:
        if server is not None:
            server.shutdown()
            server.server_close()
        _fail(str(exc))

    if server is None:
        return

    try:
        _wait_for_shutdown()
    finally:
        server.shutdown()
        server.server_close()
        try:
            sd.deregister()
        except BeaconError as exc:
            _fail(str(exc))


def cmd_deregister(args) -> None:
    sd = _build_discovery(args)
    try:
        sd.deregister()
    except BeaconError as exc:
        _fail(str(exc))


def cmd_kv_get(args) -> None:
    client = _build_client(args)
    try:
        value = get_value(client, args.key, codec=RAW if args.raw else JSON)
    except BeaconError as exc:
        _fail(str(exc))
    if args.raw:
        sys.stdout.buffer.write(value)
        sys.stdout.flush()
    else:
        print(json.dumps(value, indent=2))


def cmd_kv_put(args) -> None:
    client = _build_client(args)
    if args.file:
        try:
            data = Path(args.file).read_bytes()
        except OSError as exc:
            _fail(f"cannot read {args.file}: {exc}")
    elif args.value is not None:
        data = os.fsencode(args.value)
    else:
        data = sys.stdin.buffer.read()
    try:
        put_value(client, args.key, data)
    except BeaconError as exc:
        _fail(str(exc))
    print(f"[beacon] wrote {len(data)} bytes to {args.key}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="beacon",
        description="beacon: register a service with Consul and use its KV store",
    )
    subparsers = parser.add_subparsers(dest="command")

    # register
    register_parser = subparsers.add_parser(
        "register", help="Register this instance with an HTTP health check",
    )
    _add_service_args(register_parser)
    register_parser.add_argument(
        "--serve", action="store_true",
        help="Serve the health endpoint, block until SIGINT/SIGTERM, then deregister",
    )
    register_parser.add_argument(
        "--bind", type=str, default="0.0.0.0",
        help="Bind address for --serve (default: 0.0.0.0)",
    )
    register_parser.add_argument(
        "--dry-run", action="store_true", dest="dry_run",
        help="Print the registration payload without sending it",
    )
    register_parser.set_defaults(func=cmd_register)

    # deregister
    deregister_parser = subparsers.add_parser(
        "deregister", help="Remove this instance from the catalog",
    )
    _add_service_args(deregister_parser)
    deregister_parser.set_defaults(func=cmd_deregister)

    # kv
    kv_parser = subparsers.add_parser("kv", help="Read or write the registry KV store")
    kv_sub = kv_parser.add_subparsers(dest="kv_command")

    kv_get = kv_sub.add_parser("get", help="Read a key (JSON by default)")
    _add_registry_args(kv_get)
    kv_get.add_argument("key", type=str, help="Key to read")
    kv_get.add_argument(
        "--raw", action="store_true",
        help="Write the stored bytes to stdout without decoding",
    )
    kv_get.set_defaults(func=cmd_kv_get)

    kv_put = kv_sub.add_parser("put", help="Write raw bytes to a key")
    _add_registry_args(kv_put)
    kv_put.add_argument("key", type=str, help="Key to write")
    kv_put.add_argument("value", type=str, nargs="?", help="Value (default: read stdin)")
    kv_put.add_argument("--file", type=str, help="Read the value from a file")
    kv_put.set_defaults(func=cmd_kv_put)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "kv" and not args.kv_command:
        kv_parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
