"""Command-line argument parsing for the FTP tool."""

from __future__ import annotations

import argparse
from typing import List, Optional

COMMANDS = {
    "check": (0, 0),
    "ls": (0, 1),
    "get": (1, 2),
    "put": (1, 2),
    "mkdir": (1, 1),
    "rmdir": (1, 1),
    "rm": (1, 1),
    "mv": (2, 2),
    "pwd": (0, 0),
    "exists": (1, 1),
    "size": (1, 1),
    "mtime": (1, 1),
    "stat": (1, 1),
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="FTP/FTPS/FTPES/SFTP client driven by named connection profiles")
    parser.add_argument("--env", type=str, default="ftp.yaml", help="Path to configuration file")
    parser.add_argument("--protocol", choices=["ftp", "ftps", "ftpes", "sftp"], default="sftp", help="Transfer protocol")
    parser.add_argument("--show-config", action="store_true", help="Log the effective configuration before running")

    # per-call overrides of the named profile
    parser.add_argument("--host", type=str, help="Override host of the connection profile")
    parser.add_argument("--port", type=int, help="Override port of the connection profile")
    parser.add_argument("--username", type=str, help="Override username of the connection profile")
    parser.add_argument("--password", nargs="?", const="__PROMPT__", help="Override password (omit value to prompt)")
    parser.add_argument("--key", type=str, help="SFTP private key file")
    parser.add_argument("--timeout", type=float, help="Connection timeout in seconds")
    parser.add_argument("--no-verify", action="store_true", help="Skip TLS certificate verification (ftps/ftpes)")

    parser.add_argument("connection", help="Connection profile name or host")
    parser.add_argument("command", choices=sorted(COMMANDS), help="Operation to run")
    parser.add_argument("args", nargs="*", help="Operation arguments")

    args = parser.parse_args(argv)
    low, high = COMMANDS[args.command]
    if not low <= len(args.args) <= high:
        parser.error(f"'{args.command}' takes between {low} and {high} arguments")
    if args.command == "stat" and args.protocol != "sftp":
        parser.error("'stat' is only available with --protocol sftp")
    if args.no_verify and args.protocol not in ("ftps", "ftpes"):
        parser.error("--no-verify is only available with --protocol ftps or ftpes")
    return args


__all__ = ["COMMANDS", "parse_args"]
