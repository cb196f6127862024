"""High-level entrypoint for the FTP tool."""

from __future__ import annotations

import getpass
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from .cli import parse_args
from .client import Client, setup_logger
from .config import Settings, load_settings, require_profile
from .connections import Connection

MASKED_KEYS = ("password", "passphrase")


def _explicit_options(args) -> Dict[str, Any]:
    options: Dict[str, Any] = {}
    for key in ("host", "port", "username", "key", "timeout"):
        value = getattr(args, key, None)
        if value is not None:
            options[key] = value
    if args.password == "__PROMPT__":
        options["password"] = getpass.getpass("Password: ")
    elif args.password is not None:
        options["password"] = args.password
    if args.no_verify:
        options["ssl"] = {"verify": False}
    return options


def _printable_settings(settings: Settings) -> Dict[str, Any]:
    printable = asdict(settings)
    for profile in printable["connections"].values():
        for key in MASKED_KEYS:
            if profile.get(key):
                profile[key] = "***"
    return printable


def _run_command(conn: Connection, command: str, args: List[str]) -> int:
    if command == "check":
        ok = conn.can_connect()
        print("ok" if ok else "failed")
        return 0 if ok else 1
    if command == "ls":
        for line in conn.list(*args):
            print(line)
    elif command == "get":
        conn.download(args[0], to=args[1] if len(args) > 1 else None)
    elif command == "put":
        conn.upload(args[0], to=args[1] if len(args) > 1 else None)
    elif command == "mkdir":
        conn.mkdir(args[0])
    elif command == "rmdir":
        conn.rmdir(args[0])
    elif command == "rm":
        conn.delete(args[0])
    elif command == "mv":
        conn.rename(args[0], args[1])
    elif command == "pwd":
        print(conn.pwd())
    elif command == "exists":
        found = conn.exists(args[0])
        print("yes" if found else "no")
        return 0 if found else 1
    elif command == "size":
        print(conn.file_size(args[0]))
    elif command == "mtime":
        print(conn.mtime(args[0]).isoformat())
    elif command == "stat":
        print(json.dumps(conn.stat(args[0]), indent=2))
    else:
        raise ValueError(f"Unknown command '{command}'")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings(Path(args.env).resolve())
    logger = setup_logger(settings.log_file)

    if args.show_config:
        logger.info("[CONFIG]\n" + json.dumps(_printable_settings(settings), ensure_ascii=False, indent=2))

    options = _explicit_options(args)
    require_profile(args.connection, options, settings.connections)
    client = Client(settings, logger)
    return client.open(
        args.protocol,
        args.connection,
        lambda conn: _run_command(conn, args.command, args.args),
        **options,
    )


__all__ = ["main"]
