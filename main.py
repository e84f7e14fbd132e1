"""Command-line interface for the Intern Connect chat service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

from internconnect.auth import AuthService
from internconnect.config import Settings, load_settings
from internconnect.errors import ChatError
from internconnect.groups import GroupService
from internconnect.transport import GraphQLClient

logger = logging.getLogger("internconnect.main")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Intern Connect group chat utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: INTERNCONNECT_CONFIG)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve", host=DEFAULT_HOST, port=DEFAULT_PORT)

    serve_parser = subparsers.add_parser("serve", help="Start the chat web interface")
    serve_parser.add_argument("--host", default=DEFAULT_HOST, help="Bind address for the web interface")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port for the web interface (default: {DEFAULT_PORT})",
    )

    subparsers.add_parser("rooms", help="List the chat rooms known to the backend")

    register_parser = subparsers.add_parser("register", help="Register a new chat account")
    register_parser.add_argument("name", help="Display name for the user")
    register_parser.add_argument("email", help="Email address used to log in")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "rooms", "register"}

    global_args: list[str] = []
    while args_list and args_list[0].startswith("--config"):
        if args_list[0] == "--config" and len(args_list) > 1:
            global_args.extend(args_list[:2])
            args_list = args_list[2:]
        else:
            global_args.append(args_list.pop(0))

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*global_args, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*global_args, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*global_args, *args_list])


def _load_settings(config: str | None) -> Settings:
    config_path = Path(config).expanduser().resolve(strict=False) if config else None
    return load_settings(config_path)


def _build_client(settings: Settings) -> GraphQLClient:
    return GraphQLClient(
        settings.graphql_http_url,
        settings.admin_secret,
        timeout=settings.request_timeout,
    )


def _serve(settings: Settings, *, host: str, port: int) -> None:
    from internconnect.web import create_app
    import uvicorn

    logger.info("Starting Intern Connect on http://%s:%s (%s updates)", host, port, settings.realtime)
    uvicorn.run(create_app(settings), host=host, port=port, log_level="info")


def _list_rooms(settings: Settings) -> int:
    service = GroupService(_build_client(settings))
    try:
        rooms = asyncio.run(service.list_rooms())
    except ChatError as exc:
        print(f"Failed to list rooms: {exc}", file=sys.stderr)
        return 1

    if not rooms:
        print("No chat rooms have been created yet.")
        return 0

    print(f"{len(rooms)} room(s) found:")
    print(f"{'ID':<38}  {'Name':<24}  Created by")
    print("-" * 80)
    for room in rooms:
        print(f"{room.id:<38}  {room.name:<24}  {room.creator_name}")
    return 0


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        if not password.strip():
            print("Password must not be empty. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _register(settings: Settings, name: str, email: str) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Aborted registering user.", file=sys.stderr)
        return 1

    service = AuthService(_build_client(settings))
    try:
        user = asyncio.run(service.register(name, email, password))
    except ChatError as exc:
        print(f"Failed to register user: {exc}", file=sys.stderr)
        return 1

    print(f"Registered user {user.id}: {user.name} <{user.email}>")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    try:
        settings = _load_settings(args.config)
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
        return 0
    if args.command == "rooms":
        return _list_rooms(settings)
    if args.command == "register":
        return _register(settings, args.name, args.email)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
