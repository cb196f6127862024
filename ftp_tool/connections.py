"""Per-call FTP and SFTP session objects with lazy connect and guaranteed close."""

from __future__ import annotations

import ftplib
import json
import logging
import os
import posixpath
import ssl
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

import paramiko

from .config import FTPOptions, SFTPOptions


def build_ssl_context(options: Mapping[str, Any]) -> ssl.SSLContext:
    context = ssl.create_default_context(cafile=options.get("ca_file"))
    # verify_mode 0 is ssl.CERT_NONE
    if not options.get("verify", True) or options.get("verify_mode", ssl.CERT_REQUIRED) == ssl.CERT_NONE:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if options.get("cert_file"):
        context.load_cert_chain(options["cert_file"], options.get("key_file"))
    return context


class ImplicitFTP_TLS(ftplib.FTP_TLS):
    """FTP_TLS variant that wraps the control socket as soon as it is connected."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._sock = None

    @property
    def sock(self):
        return self._sock

    @sock.setter
    def sock(self, value):
        if value is not None and not isinstance(value, ssl.SSLSocket):
            value = self.context.wrap_socket(value, server_hostname=self.host)
        self._sock = value


def parse_mdtm(response: str) -> datetime:
    """Parse a ``213 YYYYMMDDHHMMSS[.sss]`` reply into an aware UTC datetime."""
    value = response.split(None, 1)[-1].strip()
    stamp, _, fraction = value.partition(".")
    parsed = datetime.strptime(stamp[:14], "%Y%m%d%H%M%S")
    if fraction:
        parsed = parsed.replace(microsecond=int(fraction[:6].ljust(6, "0")))
    return parsed.replace(tzinfo=timezone.utc)


def _remove_partial(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)


class Connection:
    protocol = ""
    connect_errors: Tuple[Type[BaseException], ...] = (OSError,)

    def __init__(self, host: str, username: Optional[str], password: Optional[str], logger: logging.Logger):
        self.host = host
        self.username = username
        self.password = password
        self.logger = logger

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.username}@{self.host}>"

    @property
    def closed(self) -> bool:
        raise NotImplementedError

    def connect(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def can_connect(self) -> bool:
        try:
            self.connect()
            return True
        except self.connect_errors as exc:
            self.logger.warning(f"[{self.protocol.upper()}] cannot connect to '{self.host}': {exc}")
            return False

    def _log_connect(self) -> None:
        self.logger.info(f"Connecting to '{self.host}' with user '{self.username}'")


class FTPConnection(Connection):
    """FTP, FTPS (implicit TLS) or FTPES (explicit TLS) session backed by ftplib."""

    connect_errors = ftplib.all_errors

    def __init__(self, options: FTPOptions, logger: logging.Logger):
        super().__init__(options.host, options.username, options.password, logger)
        self.options = options
        if not options.ssl:
            self.protocol = "ftp"
        elif options.implicit_ftps:
            self.protocol = "ftps"
        else:
            self.protocol = "ftpes"
        self._session: Optional[ftplib.FTP] = None

    @property
    def closed(self) -> bool:
        return self._session is None or self._session.sock is None

    def _new_session(self) -> ftplib.FTP:
        kwargs: Dict[str, Any] = {}
        if self.options.timeout is not None:
            kwargs["timeout"] = self.options.timeout
        if not self.options.ssl:
            return ftplib.FTP(**kwargs)
        kwargs["context"] = build_ssl_context(self.options.ssl_options)
        if self.options.implicit_ftps:
            return ImplicitFTP_TLS(**kwargs)
        return ftplib.FTP_TLS(**kwargs)

    def connect(self) -> None:
        if not self.closed:
            return
        self._log_connect()
        session = self._new_session()
        try:
            session.connect(self.host, self.options.port)
            session.login(self.username or "", self.password or "")
            if self.options.ssl:
                session.prot_p()
        except ftplib.all_errors:
            session.close()
            raise
        self._session = session

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._session.quit()
        except ftplib.all_errors as exc:
            self.logger.debug(f"[FTP] QUIT failed on '{self.host}': {exc}")
        finally:
            self._session.close()

    def _remote(self, path: str) -> str:
        return f"{self.username}@{self.host}:{posixpath.join(self._session.pwd(), path)}"

    def upload(self, localfile: str, to: Optional[str] = None) -> None:
        to = to or os.path.basename(localfile)
        self.connect()
        self.logger.info(f"Uploading '{os.path.abspath(localfile)}' to '{self._remote(to)}'")
        with open(localfile, "rb") as fh:
            self._session.storbinary(f"STOR {to}", fh)

    def download(self, remotefile: str, to: Optional[str] = None) -> None:
        to = to or posixpath.basename(remotefile)
        self.connect()
        self.logger.info(f"Downloading '{self._remote(remotefile)}' to '{os.path.abspath(to)}'")
        try:
            with open(to, "wb") as fh:
                self._session.retrbinary(f"RETR {remotefile}", fh.write)
        except BaseException:
            _remove_partial(to)
            raise

    def list(self, path: Optional[str] = None) -> List[str]:
        self.connect()
        lines: List[str] = []
        self._session.retrlines(f"LIST {path}" if path else "LIST", lines.append)
        self.logger.info(f"Listing files in {path or self._session.pwd()}\n" + "\n".join(lines))
        return lines

    def mkdir(self, path: str) -> None:
        self.connect()
        self.logger.info(f"Creating directory '{self._remote(path)}'")
        self._session.mkd(path)

    def rmdir(self, path: str) -> None:
        self.connect()
        self.logger.info(f"Removing directory '{self._remote(path)}'")
        self._session.rmd(path)

    def delete(self, path: str) -> None:
        self.connect()
        self.logger.info(f"Deleting '{self._remote(path)}'")
        self._session.delete(path)

    def rename(self, old: str, new: str) -> None:
        self.connect()
        self.logger.info(f"Renaming '{self._remote(old)}' to '{new}'")
        self._session.rename(old, new)

    def chdir(self, path: str) -> None:
        self.connect()
        self.logger.info(f"Changing directory to '{path}'")
        self._session.cwd(path)

    def pwd(self) -> str:
        self.connect()
        return self._session.pwd()

    def file_size(self, path: str) -> int:
        self.connect()
        # SIZE is only meaningful in binary mode
        self._session.voidcmd("TYPE I")
        return self._session.size(path)

    def exists(self, path: str) -> bool:
        # login failures must not read as a missing file
        self.connect()
        try:
            self.file_size(path)
        except ftplib.error_perm:
            return False
        return True

    def mtime(self, path: str) -> datetime:
        self.connect()
        return parse_mdtm(self._session.sendcmd(f"MDTM {path}"))


class SFTPConnection(Connection):
    """SFTP session backed by a paramiko SSH client."""

    protocol = "sftp"
    connect_errors = (paramiko.SSHException, OSError)

    def __init__(self, options: SFTPOptions, logger: logging.Logger):
        super().__init__(options.host, options.username, options.password, logger)
        self.options = options
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    @property
    def closed(self) -> bool:
        if self._client is None or self._sftp is None:
            return True
        transport = self._client.get_transport()
        return transport is None or not transport.is_active()

    def connect(self) -> None:
        if not self.closed:
            return
        # drop a session whose transport went away
        self.close()
        self._log_connect()
        client = paramiko.SSHClient()
        if self.options.strict_host_key_checking:
            client.load_system_host_keys()
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        # non-interactive: only the configured credentials are tried
        kwargs: Dict[str, Any] = dict(
            hostname=self.host,
            port=self.options.port,
            username=self.username,
            timeout=self.options.timeout,
            allow_agent=False,
            look_for_keys=False,
        )
        methods = self.auth_methods()
        if "publickey" in methods:
            kwargs["key_filename"] = self.options.keys
            if self.options.passphrase:
                kwargs["passphrase"] = self.options.passphrase
        if "password" in methods:
            kwargs["password"] = self.password
        self.logger.debug(f"[SFTP] auth methods for '{self.host}': {','.join(methods) or 'none'}")
        try:
            client.connect(**kwargs)
            self._sftp = client.open_sftp()
        except self.connect_errors:
            client.close()
            raise
        self._client = client

    def auth_methods(self) -> List[str]:
        """Methods offered to the server, from the credentials set when connecting."""
        methods = []
        if self.options.keys:
            methods.append("publickey")
        if self.password:
            methods.append("password")
        return methods

    def close(self) -> None:
        if self._sftp is not None:
            try:
                self._sftp.close()
            finally:
                self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None

    def _remote(self, path: str) -> str:
        return f"{self.username}@{self.host}:{path}"

    def upload(self, localfile: str, to: Optional[str] = None) -> None:
        to = to or os.path.basename(localfile)
        self.logger.info(f"Uploading '{os.path.abspath(localfile)}' to '{self._remote(to)}'")
        self.connect()
        self._sftp.put(localfile, to)

    def download(self, remotefile: str, to: Optional[str] = None) -> None:
        to = to or posixpath.basename(remotefile)
        self.logger.info(f"Downloading '{self._remote(remotefile)}' to '{os.path.abspath(to)}'")
        self.connect()
        try:
            self._sftp.get(remotefile, to)
        except BaseException:
            _remove_partial(to)
            raise

    def list(self, path: str = ".") -> List[str]:
        self.connect()
        names = sorted(self._sftp.listdir(path))
        self.logger.info(f"Listing files in {path}\n" + "\n".join(names))
        return names

    def mkdir(self, path: str) -> None:
        self.connect()
        self.logger.info(f"Creating directory '{self._remote(path)}'")
        self._sftp.mkdir(path)

    def rmdir(self, path: str) -> None:
        self.connect()
        self.logger.info(f"Removing directory '{self._remote(path)}'")
        self._sftp.rmdir(path)

    def delete(self, path: str) -> None:
        self.connect()
        self.logger.info(f"Deleting '{self._remote(path)}'")
        self._sftp.remove(path)

    def rename(self, old: str, new: str) -> None:
        self.connect()
        self.logger.info(f"Renaming '{self._remote(old)}' to '{new}'")
        self._sftp.rename(old, new)

    def chdir(self, path: str) -> None:
        self.connect()
        self.logger.info(f"Changing directory to '{path}'")
        self._sftp.chdir(path)

    def pwd(self) -> str:
        self.connect()
        return self._sftp.normalize(".")

    def stat(self, path: str) -> Dict[str, Any]:
        self.connect()
        attrs = self._sftp.stat(path)
        info = {
            "size": attrs.st_size,
            "uid": attrs.st_uid,
            "gid": attrs.st_gid,
            "permissions": attrs.st_mode,
            "atime": attrs.st_atime,
            "mtime": attrs.st_mtime,
        }
        self.logger.info(f"Stat '{path}'\n{json.dumps(info, indent=2)}")
        return info

    def exists(self, path: str) -> bool:
        self.connect()
        try:
            self._sftp.stat(path)
        except FileNotFoundError:
            return False
        return True

    def file_size(self, path: str) -> int:
        self.connect()
        return self._sftp.stat(path).st_size

    def mtime(self, path: str) -> datetime:
        self.connect()
        return datetime.fromtimestamp(self._sftp.stat(path).st_mtime, tz=timezone.utc)


__all__ = [
    "Connection",
    "FTPConnection",
    "SFTPConnection",
    "ImplicitFTP_TLS",
    "build_ssl_context",
    "parse_mdtm",
]
