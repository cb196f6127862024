"""Configuration loading and option resolution for FTP/SFTP connections."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_PORTS = {
    "ftp": 21,
    "ftps": 990,
    "ftpes": 21,
    "sftp": 22,
}
FTP_PROTOCOLS = ("ftp", "ftps", "ftpes")
PROFILE_SECTIONS = ("ftp", "connections")
ENV_PREFIX = "FTP_TOOL_"


class ConnectionNotConfiguredError(ValueError):
    """Raised when a connection name has no profile and no explicit options."""

    def __init__(self, name: str):
        super().__init__(f"FTP connection '{name}' not configured")
        self.name = name


class Env:
    """Helper that reads key/value data and named profiles from .env or YAML files."""

    def __init__(self, path: Path):
        self.path = path
        self.data: Dict[str, Any] = {}
        self.profiles: Dict[str, Dict[str, Any]] = {}
        if not path.exists():
            return
        suffix = path.suffix.lower()
        if suffix in {".yaml", ".yml"}:
            self.data = self._load_yaml(path)
        else:
            self.data = self._load_env(path)

    @staticmethod
    def _normalize_keys(mapping: Mapping[str, Any]) -> Dict[str, Any]:
        normalised: Dict[str, Any] = {}
        for key, value in (mapping or {}).items():
            if not isinstance(key, str):
                raise ValueError("Configuration keys must be strings.")
            normalised[key.lower()] = value
        return normalised

    def _load_env(self, path: Path) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for raw in path.read_text(encoding="utf-8").splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip()
            if key.upper().startswith(ENV_PREFIX):
                key = key[len(ENV_PREFIX):]
            data[key.lower()] = value.strip().strip('"').strip("'")
        return data

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError("PyYAML is required for YAML configuration support.") from exc

        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"{path} root must be a mapping")

        section = None
        for key in PROFILE_SECTIONS:
            if raw.get(key) is not None:
                section = raw[key]
                break
        if section is not None:
            self.profiles = parse_profiles(section)

        return self._normalize_keys(
            {k: v for k, v in raw.items() if k not in PROFILE_SECTIONS and not isinstance(v, dict)}
        )

    def get(self, key: str, default: Any = None) -> Any:
        return os.getenv(ENV_PREFIX + key.upper(), self.data.get(key.lower(), default))

    def get_float(self, key: str, default: float) -> float:
        val = self.get(key)
        if val is None or val == "":
            return default
        if isinstance(val, (int, float)):
            return float(val)
        try:
            return float(str(val))
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool) -> bool:
        val = self.get(key)
        if val is None or val == "":
            return default
        if isinstance(val, bool):
            return val
        if isinstance(val, (int, float)):
            return val != 0
        return str(val).lower() not in {"0", "false", "no", "off"}


@dataclass
class ConnectionProfile:
    name: str
    host: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    port: Optional[int] = None
    key: Optional[str] = None
    passphrase: Optional[str] = None
    ssl: Any = None
    timeout: Optional[float] = None


@dataclass
class Settings:
    log_file: Optional[str] = None
    timeout: float = 30.0
    strict_host_key_checking: bool = False
    connections: Dict[str, ConnectionProfile] = field(default_factory=dict)
    config_path: str = ""


@dataclass
class FTPOptions:
    host: str
    username: Optional[str]
    password: Optional[str]
    port: int
    ssl: bool = False
    implicit_ftps: bool = False
    ssl_options: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None


@dataclass
class SFTPOptions:
    host: str
    username: Optional[str]
    password: Optional[str]
    port: int
    keys: List[str] = field(default_factory=list)
    passphrase: Optional[str] = None
    timeout: Optional[float] = None
    strict_host_key_checking: bool = False


def _as_int(value: Any, what: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{what} must be an integer, got {value!r}") from exc


def _as_float(value: Any, what: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{what} must be a number, got {value!r}") from exc


def parse_profile(name: str, raw: Mapping[str, Any]) -> ConnectionProfile:
    data = Env._normalize_keys(raw)
    return ConnectionProfile(
        name=name,
        host=str(data["host"]) if data.get("host") else None,
        username=str(data["username"]) if data.get("username") is not None else None,
        password=str(data["password"]) if data.get("password") is not None else None,
        port=_as_int(data.get("port"), f"Port of connection '{name}'"),
        key=str(data["key"]) if data.get("key") else None,
        passphrase=str(data["passphrase"]) if data.get("passphrase") is not None else None,
        ssl=data.get("ssl"),
        timeout=_as_float(data.get("timeout"), f"Timeout of connection '{name}'"),
    )


def parse_profiles(section: Any) -> Dict[str, ConnectionProfile]:
    if not isinstance(section, Mapping):
        raise ValueError("ftp section must be a mapping of connection names")
    profiles: Dict[str, ConnectionProfile] = {}
    for name, raw in section.items():
        raw = raw or {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"Connection '{name}' must be a mapping")
        profiles[str(name)] = parse_profile(str(name), raw)
    return profiles


def load_settings(path: Path) -> Settings:
    env = Env(path)
    return Settings(
        log_file=env.get("log_file", None),
        timeout=env.get_float("timeout", 30.0),
        strict_host_key_checking=env.get_bool("strict_host_key_checking", False),
        connections=env.profiles,
        config_path=str(path),
    )


def settings_from_mapping(config: Mapping[str, Any]) -> Settings:
    """Build settings from an in-memory mapping shaped like the YAML file."""
    config = config or {}
    section = None
    for key in PROFILE_SECTIONS:
        if config.get(key) is not None:
            section = config[key]
            break
    return Settings(
        log_file=config.get("log_file"),
        timeout=_as_float(config.get("timeout"), "timeout") or 30.0,
        strict_host_key_checking=bool(config.get("strict_host_key_checking", False)),
        connections=parse_profiles(section) if section is not None else {},
    )


def require_profile(
    name: str, explicit: Mapping[str, Any], profiles: Mapping[str, ConnectionProfile]
) -> None:
    """Reject a connection name that is neither a profile nor backed by explicit options."""
    if name not in profiles and not explicit:
        raise ConnectionNotConfiguredError(name)


def _lookup_profile(name: str, profiles: Mapping[str, ConnectionProfile]) -> ConnectionProfile:
    # an unknown name is taken as the host itself
    return profiles.get(name) or ConnectionProfile(name=name)


def _pick(explicit: Mapping[str, Any], key: str, fallback: Any) -> Any:
    value = explicit.get(key)
    return value if value is not None else fallback


def _ssl_mapping(value: Any) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        return Env._normalize_keys(value)
    return {}


def resolve_ftp_options(
    name: str,
    protocol: str,
    explicit: Mapping[str, Any],
    profiles: Mapping[str, ConnectionProfile],
    default_timeout: Optional[float] = None,
) -> FTPOptions:
    if protocol not in FTP_PROTOCOLS:
        raise ValueError(f"Unknown FTP protocol '{protocol}'")
    profile = _lookup_profile(name, profiles)

    if protocol == "ftp":
        # plain FTP only turns TLS on when the caller asks for it
        ssl_value = explicit.get("ssl")
        ssl_options = _ssl_mapping(ssl_value)
        use_ssl = bool(ssl_value)
        implicit = bool(ssl_options.get("implicit", False))
    else:
        ssl_options = _ssl_mapping(_pick(explicit, "ssl", profile.ssl))
        use_ssl, implicit = True, protocol == "ftps"

    return FTPOptions(
        host=explicit.get("host") or profile.host or name,
        username=_pick(explicit, "username", profile.username),
        password=_pick(explicit, "password", profile.password),
        port=_as_int(explicit.get("port"), "port") or profile.port or DEFAULT_PORTS[protocol],
        ssl=use_ssl,
        implicit_ftps=implicit,
        ssl_options=ssl_options,
        timeout=_as_float(explicit.get("timeout"), "timeout") or profile.timeout or default_timeout,
    )


def resolve_sftp_options(
    name: str,
    explicit: Mapping[str, Any],
    profiles: Mapping[str, ConnectionProfile],
    default_timeout: Optional[float] = None,
    strict_host_key_checking: bool = False,
) -> SFTPOptions:
    profile = _lookup_profile(name, profiles)

    password = _pick(explicit, "password", profile.password)
    key = explicit.get("key") or profile.key
    keys = [os.path.expanduser(str(key))] if key else []

    return SFTPOptions(
        host=explicit.get("host") or profile.host or name,
        username=_pick(explicit, "username", profile.username),
        password=password,
        port=_as_int(explicit.get("port"), "port") or profile.port or DEFAULT_PORTS["sftp"],
        keys=keys,
        passphrase=_pick(explicit, "passphrase", profile.passphrase),
        timeout=_as_float(explicit.get("timeout"), "timeout") or profile.timeout or default_timeout,
        strict_host_key_checking=bool(
            _pick(explicit, "strict_host_key_checking", strict_host_key_checking)
        ),
    )


__all__ = [
    "DEFAULT_PORTS",
    "ConnectionNotConfiguredError",
    "Env",
    "ConnectionProfile",
    "Settings",
    "FTPOptions",
    "SFTPOptions",
    "parse_profiles",
    "require_profile",
    "load_settings",
    "settings_from_mapping",
    "resolve_ftp_options",
    "resolve_sftp_options",
]
