"""Command line access to settings served by ConfigCat."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
import threading
from typing import Any, Callable, Optional, Sequence

from .client import ConfigCatClient
from .config import POLLING_MODE_AUTO, ClientConfig, ConfigError, load_config
from .parser import User


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[..., ConfigCatClient]


class CommandError(RuntimeError):
    """Raised when command line arguments fail validation."""


class CliArgumentParser(argparse.ArgumentParser):
    """Argument parser that raises exceptions instead of exiting on errors."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise CommandError(message)


def configure_logging() -> None:
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(handler)

    log_level_name = os.getenv("LOG_LEVEL", "WARNING").upper().strip()
    root_logger.setLevel(getattr(logging, log_level_name, logging.WARNING))
    logging.captureWarnings(True)


def build_parser() -> CliArgumentParser:
    parser = CliArgumentParser(prog="configcat", description="Inspect ConfigCat settings.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    get_parser = subparsers.add_parser("get", help="print the value of a setting")
    get_parser.add_argument("key")
    get_parser.add_argument("--default", dest="default", default=None, help="JSON literal or plain string")
    get_parser.add_argument("--user-id", dest="user_id")
    get_parser.add_argument("--email", default="")
    get_parser.add_argument("--country", default="")
    get_parser.add_argument("--custom", action="append", default=[], metavar="NAME=VALUE")

    subparsers.add_parser("dump", help="print the raw configuration document")
    subparsers.add_parser("keys", help="list setting keys")
    subparsers.add_parser("refresh", help="force a fetch and report the outcome")

    watch_parser = subparsers.add_parser("watch", help="print each new configuration document")
    watch_parser.add_argument("--count", type=int, default=0, help="stop after this many changes")
    return parser


def _parse_default(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _build_user(args: argparse.Namespace) -> Optional[User]:
    if not args.user_id:
        if args.email or args.country or args.custom:
            raise CommandError("--user-id is required when user attributes are given")
        return None
    custom = {}
    for item in args.custom:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise CommandError(f"invalid --custom value '{item}', expected NAME=VALUE")
        custom[name.strip()] = value
    return User(identifier=args.user_id, email=args.email, country=args.country, custom=custom)


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _watch(config: ClientConfig, factory: ClientFactory, count: int) -> int:
    finished = threading.Event()
    seen = 0
    lock = threading.Lock()

    def _on_change(document: str) -> None:
        nonlocal seen
        print(document, flush=True)
        with lock:
            seen += 1
            if count and seen >= count:
                finished.set()

    auto_config = dataclasses.replace(config, polling_mode=POLLING_MODE_AUTO)
    with factory(auto_config, change_listeners=(_on_change,)):
        try:
            finished.wait()
        except KeyboardInterrupt:
            print()
    return 0


def main(argv: Optional[Sequence[str]] = None, *, client_factory: Optional[ClientFactory] = None) -> int:
    configure_logging()
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        user = _build_user(args) if args.command == "get" else None
    except CommandError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    try:
        config = load_config()
    except ConfigError as exc:
        _LOGGER.error("Configuration error: %s", exc)
        return 2

    factory = client_factory or ConfigCatClient.from_config
    if args.command == "watch":
        return _watch(config, factory, args.count)

    with factory(config) as client:
        if args.command == "get":
            value = client.get_value(args.key, _parse_default(args.default), user)
            if value is None:
                print(f"Setting '{args.key}' is not available", file=sys.stderr)
                return 1
            print(_format_value(value))
        elif args.command == "dump":
            print(client.get_configuration_json_string())
        elif args.command == "keys":
            for key in client.get_all_keys():
                print(key)
        elif args.command == "refresh":
            result = client.refresh()
            if not result.success:
                print(f"Refresh failed: {result.error}", file=sys.stderr)
                return 1
            print("changed" if result.changed else "unchanged")
    return 0


__all__ = [
    "CliArgumentParser",
    "CommandError",
    "build_parser",
    "configure_logging",
    "main",
]
