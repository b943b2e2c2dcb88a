"""Missive configuration.

A configuration file is either YAML (``.yml`` / ``.yaml``; nested mappings or
flat dotted keys) or a Java style ``key=value`` properties file (anything
else). Every key can be overridden from the environment as ``MISSIVE_`` plus
the key upper-cased with dots turned into underscores, e.g.
``MISSIVE_SENDER_KEYSTORE_PASSWORD``. A ``.env`` file in the working
directory is honoured.

All validation happens here, before any key material is touched or any
server contacted; every problem is a ConfigurationError naming the key.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError
from .utils.logging import get_logger

log = get_logger(__name__)

ENV_PREFIX = "MISSIVE_"

REQUIRED_KEYS = (
    "sender.name",
    "sender.address",
    "sender.keystore.file",
    "sender.keystore.alias",
    "sender.keystore.provider",
    "sender.keystore.type",
    "sender.keystore.password",
    "recipient.address",
    "recipient.key.file",
    "smtp.host",
    "smtp.username",
    "smtp.password",
    "imap.host",
    "imap.username",
    "imap.password",
    "imap.protocol",
    "imap.folder",
    "sign.algorithm",
    "smime.cms.algorithm",
)

OPTIONAL_KEYS = (
    "recipient.name",
    "smtp.port",
    "smtp.security",
    "imap.port",
    "sign.mode",
    "smime.key.transport",
    "timeout",
)


def field_name(key: str) -> str:
    return key.replace(".", "_")


def env_name(key: str) -> str:
    return ENV_PREFIX + field_name(key).upper()


_BY_FIELD = {field_name(k): k for k in REQUIRED_KEYS + OPTIONAL_KEYS}


class MissiveSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    sender_name: str
    sender_address: str
    sender_keystore_file: str
    sender_keystore_alias: str
    sender_keystore_provider: str
    sender_keystore_type: str
    sender_keystore_password: str = Field(repr=False)

    recipient_name: Optional[str] = None
    recipient_address: str
    recipient_key_file: str

    smtp_host: str
    smtp_port: int = Field(default=25, gt=0, lt=65536)
    smtp_username: str
    smtp_password: str = Field(repr=False)
    smtp_security: Literal["none", "starttls", "ssl"] = "none"

    imap_host: str
    imap_port: Optional[int] = Field(default=None, gt=0, lt=65536)
    imap_username: str
    imap_password: str = Field(repr=False)
    imap_protocol: Literal["imap", "imaps"]
    imap_folder: str

    sign_algorithm: str
    sign_mode: Literal["detached", "opaque"] = "detached"
    smime_cms_algorithm: str
    smime_key_transport: Literal["rsaes_pkcs1v15", "rsaes_oaep"] = "rsaes_pkcs1v15"

    timeout: float = Field(default=30.0, gt=0)


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in data.items():
        key = f"{prefix}{k}"
        if isinstance(v, dict):
            out.update(_flatten(v, key + "."))
        else:
            out[key] = v
    return out


def parse_properties(text: str) -> Dict[str, str]:
    """Minimal java.util.Properties reader: comments, ``=``/``:`` separators, ``\\`` continuations."""
    out: Dict[str, str] = {}
    pending = ""
    for raw in text.splitlines():
        line = pending + raw.strip() if pending else raw.strip()
        if not pending and (not line or line[0] in "#!"):
            continue
        if line.endswith("\\") and not line.endswith("\\\\"):
            pending = line[:-1]
            continue
        pending = ""
        cut = min((i for i in (line.find("="), line.find(":")) if i >= 0), default=-1)
        if cut < 0:
            key, value = line, ""
        else:
            key, value = line[:cut], line[cut + 1 :]
        out[key.strip()] = value.strip()
    return out


def _read(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ConfigurationError("file not found", path=str(path))
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"unreadable: {e}", path=str(path)) from e
    if not text.strip():
        raise ConfigurationError("empty", path=str(path))
    if path.suffix.lower() in (".yml", ".yaml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML: {e}", path=str(path)) from e
        if data is None:
            raise ConfigurationError("empty", path=str(path))
        if not isinstance(data, dict):
            raise ConfigurationError("top level must be a mapping", path=str(path))
        return _flatten(data)
    return parse_properties(text)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def build_settings(values: Dict[str, Any], path: Optional[str] = None) -> MissiveSettings:
    """Validate a flat ``dotted.key -> value`` mapping."""
    for key in sorted(set(values) - set(_BY_FIELD.values())):
        log.warning("ignoring unknown configuration key %s", key)
    for key in REQUIRED_KEYS:
        if key not in values:
            raise ConfigurationError("missing", key=key, path=path)
        if _blank(values[key]):
            raise ConfigurationError("empty value", key=key, path=path)
    fields = {}
    for key in REQUIRED_KEYS + OPTIONAL_KEYS:
        if key in values and not _blank(values[key]):
            # YAML scalars (ports, numeric passwords) are normalised to text first
            fields[field_name(key)] = str(values[key]).strip()
    try:
        return MissiveSettings(**fields)
    except ValidationError as e:
        first = e.errors()[0]
        loc = str(first["loc"][0]) if first.get("loc") else ""
        raise ConfigurationError(first.get("msg", "invalid"), key=_BY_FIELD.get(loc, loc or None), path=path) from e


def load_settings(path: Union[str, Path]) -> MissiveSettings:
    p = Path(path)
    load_dotenv(Path.cwd() / ".env")
    values = _read(p)
    for key in REQUIRED_KEYS + OPTIONAL_KEYS:
        env = os.getenv(env_name(key))
        if env is not None:
            values[key] = env
    settings = build_settings(values, path=str(p))
    log.info("configuration loaded from %s", p)
    return settings


__all__ = [
    "MissiveSettings",
    "REQUIRED_KEYS",
    "OPTIONAL_KEYS",
    "load_settings",
    "build_settings",
    "parse_properties",
    "env_name",
]
