from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


class ConfigError(ValueError):
    pass


DISPOSE_CHOICES = ("archive", "delete")
DEFAULT_SENTINEL_MAX_AGE = 300


@dataclass(frozen=True)
class ImapConfig:
    host: str
    port: int
    hostname: str  # "" disables certificate name checking
    connect_timeout: float
    min_cert_days: int
    archive_folder: str


@dataclass(frozen=True)
class SecretsConfig:
    provider: str
    reference: str


@dataclass(frozen=True)
class TriageConfig:
    dispose: str
    sentinel_subject: str | None
    max_age_seconds: int


@dataclass(frozen=True)
class AppConfig:
    state_db: Path
    imap: ImapConfig
    secrets: SecretsConfig
    triage: TriageConfig


def _require(d: dict[str, Any], k: str) -> Any:
    if k not in d:
        raise ConfigError(f"Missing required key: {k}")
    return d[k]


def _reject_unknown(d: dict[str, Any], allowed: set[str], context: str) -> None:
    unknown = set(d.keys()) - allowed
    if unknown:
        keys = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown key(s) in {context}: {keys}")


def _mapping(value: Any, context: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{context} must be a mapping")
    return value


def _int(value: Any, context: str, *, minimum: int = 0) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{context} must be an integer") from e
    if n < minimum:
        raise ConfigError(f"{context} must be >= {minimum}")
    return n


def _load_imap(raw: dict[str, Any]) -> ImapConfig:
    _reject_unknown(
        raw,
        {"host", "port", "hostname", "connect_timeout", "min_cert_days", "archive_folder"},
        "imap",
    )
    host = str(_require(raw, "host")).strip()
    if not host:
        raise ConfigError("imap.host must be non-empty")

    port = _int(raw.get("port", 993), "imap.port", minimum=1)
    if port > 65535:
        raise ConfigError("imap.port must be <= 65535")

    # absent -> verify against host; explicit "" -> no name check
    hostname = raw.get("hostname", host)
    hostname = "" if hostname is None else str(hostname).strip()

    try:
        timeout = float(raw.get("connect_timeout", 10))
    except (TypeError, ValueError) as e:
        raise ConfigError("imap.connect_timeout must be a number") from e
    if timeout <= 0:
        raise ConfigError("imap.connect_timeout must be > 0")

    folder = str(raw.get("archive_folder", "listkeeper-archive")).strip()
    if not folder or any(c in folder for c in "\r\n"):
        raise ConfigError("imap.archive_folder must be a single-line, non-empty name")

    return ImapConfig(
        host=host,
        port=port,
        hostname=hostname,
        connect_timeout=timeout,
        min_cert_days=_int(raw.get("min_cert_days", 0), "imap.min_cert_days"),
        archive_folder=folder,
    )


def _load_triage(raw: dict[str, Any]) -> TriageConfig:
    _reject_unknown(raw, {"dispose", "max_age_seconds", "sentinel"}, "triage")
    dispose = str(raw.get("dispose", "archive")).lower()
    if dispose not in DISPOSE_CHOICES:
        raise ConfigError(f"triage.dispose must be one of: {', '.join(DISPOSE_CHOICES)}")

    # newest Date header must be younger than this; 0 disables the check
    max_age = _int(raw.get("max_age_seconds", 0), "triage.max_age_seconds")

    sentinel_raw = raw.get("sentinel")
    if sentinel_raw is None:
        return TriageConfig(dispose=dispose, sentinel_subject=None, max_age_seconds=max_age)

    sentinel_raw = _mapping(sentinel_raw, "triage.sentinel")
    _reject_unknown(sentinel_raw, {"subject", "max_age_seconds"}, "triage.sentinel")
    subject = str(_require(sentinel_raw, "subject")).strip()
    if not subject:
        raise ConfigError("triage.sentinel.subject must be non-empty")

    return TriageConfig(
        dispose=dispose,
        sentinel_subject=subject,
        max_age_seconds=_int(
            sentinel_raw.get("max_age_seconds", max_age or DEFAULT_SENTINEL_MAX_AGE),
            "triage.sentinel.max_age_seconds",
        ),
    )


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")

    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a YAML mapping at top-level")

    _reject_unknown(raw, {"state_db", "imap", "secrets", "triage"}, "root config")

    state_db = Path(str(raw.get("state_db", "listkeeper.sqlite3"))).expanduser()
    if not state_db.is_absolute():
        state_db = path.parent / state_db

    imap_cfg = _load_imap(_mapping(_require(raw, "imap"), "imap"))

    secrets_raw = _mapping(_require(raw, "secrets"), "secrets")
    _reject_unknown(secrets_raw, {"provider", "reference"}, "secrets")
    secrets_cfg = SecretsConfig(
        provider=str(_require(secrets_raw, "provider")),
        reference=str(_require(secrets_raw, "reference")),
    )

    triage_cfg = _load_triage(_mapping(raw.get("triage"), "triage"))

    return AppConfig(
        state_db=state_db,
        imap=imap_cfg,
        secrets=secrets_cfg,
        triage=triage_cfg,
    )
