"""Block-style ``ftp``, ``ftps``, ``ftpes`` and ``sftp`` entry points.

Each entry point resolves the effective connection options (explicit
arguments, then the named profile, then protocol defaults), builds a session
object and either hands it to a callable or returns it for use as a context
manager. The connection is opened on the first remote operation and closed
when the block exits, whatever the outcome::

    client = Client({"ftp": {"example": {"host": "data.host", "username": "u", "password": "p"}}})

    with client.sftp("example") as s:
        s.upload("report.csv", to="incoming/report.csv")

    size = client.ftp("example", lambda s: s.file_size("report.csv"))
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from .config import Settings, load_settings, resolve_ftp_options, resolve_sftp_options, settings_from_mapping
from .connections import Connection, FTPConnection, SFTPConnection

LOGGER_NAME = "ftp_tool"

Block = Callable[[Connection], Any]


def setup_logger(log_file: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    return logger


def run_block(conn: Connection, block: Optional[Block]) -> Any:
    if block is None:
        return conn
    try:
        return block(conn)
    finally:
        conn.close()


class Client:
    def __init__(self, config: Union[Settings, Mapping[str, Any], None] = None, logger: Optional[logging.Logger] = None):
        if isinstance(config, Settings):
            self.settings = config
        else:
            self.settings = settings_from_mapping(config or {})
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    @classmethod
    def from_file(cls, path: Union[str, Path], logger: Optional[logging.Logger] = None) -> "Client":
        settings = load_settings(Path(path))
        return cls(settings, logger or setup_logger(settings.log_file))

    def _ftp(self, protocol: str, name: str, block: Optional[Block], options: Mapping[str, Any]) -> Any:
        opts = resolve_ftp_options(
            name, protocol, options, self.settings.connections, default_timeout=self.settings.timeout
        )
        self.logger.info(f"[{protocol.upper()}] {opts.username}@{opts.host}:{opts.port}")
        return run_block(FTPConnection(opts, self.logger), block)

    def ftp(self, name: str, block: Optional[Block] = None, **options: Any) -> Any:
        return self._ftp("ftp", name, block, options)

    def ftps(self, name: str, block: Optional[Block] = None, **options: Any) -> Any:
        """Implicit FTPS: TLS from the first byte, port 990 by default."""
        return self._ftp("ftps", name, block, options)

    def ftpes(self, name: str, block: Optional[Block] = None, **options: Any) -> Any:
        """Explicit FTPS: AUTH TLS on a plain FTP control connection, port 21 by default."""
        return self._ftp("ftpes", name, block, options)

    def sftp(self, name: str, block: Optional[Block] = None, **options: Any) -> Any:
        opts = resolve_sftp_options(
            name,
            options,
            self.settings.connections,
            default_timeout=self.settings.timeout,
            strict_host_key_checking=self.settings.strict_host_key_checking,
        )
        self.logger.info(f"[SFTP] {opts.username}@{opts.host}:{opts.port}")
        return run_block(SFTPConnection(opts, self.logger), block)

    def open(self, protocol: str, name: str, block: Optional[Block] = None, **options: Any) -> Any:
        entry = {"ftp": self.ftp, "ftps": self.ftps, "ftpes": self.ftpes, "sftp": self.sftp}.get(protocol)
        if entry is None:
            raise ValueError(f"Unknown protocol '{protocol}'")
        return entry(name, block, **options)


_default: Optional[Client] = None


def configure(config: Union[Settings, Mapping[str, Any], None] = None, log_file: Optional[str] = None) -> Client:
    """Install the client used by the module-level entry points."""
    global _default
    client = Client(config)
    client.logger = setup_logger(log_file or client.settings.log_file)
    _default = client
    return client


def default_client() -> Client:
    if _default is None:
        return configure()
    return _default


def ftp(name: str, block: Optional[Block] = None, **options: Any) -> Any:
    return default_client().ftp(name, block, **options)


def ftps(name: str, block: Optional[Block] = None, **options: Any) -> Any:
    return default_client().ftps(name, block, **options)


def ftpes(name: str, block: Optional[Block] = None, **options: Any) -> Any:
    return default_client().ftpes(name, block, **options)


def sftp(name: str, block: Optional[Block] = None, **options: Any) -> Any:
    return default_client().sftp(name, block, **options)


__all__ = [
    "Client",
    "configure",
    "default_client",
    "ftp",
    "ftps",
    "ftpes",
    "sftp",
    "run_block",
    "setup_logger",
]
