"""Sender and recipient key material.

The sender side comes from a password protected keystore holding at least one
aliased private-key entry:

  PKCS12  binary .p12/.pfx, alias = friendly name of the certificate bag that
          belongs to the key
  PEM     text bundle with one (possibly encrypted) private key and one or more
          certificates, alias = subject commonName of a certificate

The recipient side is a single PEM encoded X.509 certificate. Recipient
material never carries a private key.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from ..errors import (
    CertificateFileNotFoundError,
    CertificateNotFoundError,
    CertificateParseError,
    InvalidCredentialsError,
    KeyStoreAccessError,
)
from ..utils.logging import get_logger

log = get_logger(__name__)

# provider name -> backend. `cryptography` only ships the OpenSSL bindings.
SUPPORTED_PROVIDERS = ("openssl",)
SUPPORTED_STORE_TYPES = ("PKCS12", "PEM")


@dataclass(frozen=True)
class KeyMaterial:
    certificate: x509.Certificate
    public_key: Any
    provider: str
    alias: Optional[str] = None
    private_key: Any = field(default=None, repr=False, compare=False)

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None

    def public_view(self) -> "KeyMaterial":
        """Same identity without the private key, for encryption targets."""
        return replace(self, private_key=None)


def _read_locator(locator: str) -> bytes:
    try:
        with open(locator, "rb") as f:
            return f.read()
    except OSError as e:
        raise KeyStoreAccessError(locator, e.strerror or str(e)) from e


def _friendly_name(cert_entry) -> Optional[str]:
    if cert_entry is None or cert_entry.friendly_name is None:
        return None
    return cert_entry.friendly_name.decode("utf-8", "replace")


def _open_pkcs12(data: bytes, locator: str, alias: str, passphrase: str) -> Tuple[Any, x509.Certificate]:
    try:
        store = pkcs12.load_pkcs12(data, passphrase.encode("utf-8") if passphrase else None)
    except ValueError as e:
        # OpenSSL cannot tell a wrong MAC password from a damaged file
        raise InvalidCredentialsError(locator) from e
    if store.key is not None and store.cert is not None and _friendly_name(store.cert) == alias:
        return store.key, store.cert.certificate
    # the alias may still name a trusted-certificate entry; that is not a key entry either
    known = [_friendly_name(c) for c in store.additional_certs]
    if alias in known:
        log.warning("keystore %s: alias %s is a certificate entry, not a key entry", locator, alias)
    raise CertificateNotFoundError(alias, locator)


def _common_name(cert: x509.Certificate) -> Optional[str]:
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attrs[0].value) if attrs else None


def _same_public_key(a, b) -> bool:
    fmt = serialization.PublicFormat.SubjectPublicKeyInfo
    enc = serialization.Encoding.DER
    return a.public_bytes(enc, fmt) == b.public_bytes(enc, fmt)


def _open_pem(data: bytes, locator: str, alias: str, passphrase: str) -> Tuple[Any, x509.Certificate]:
    try:
        certs: List[x509.Certificate] = x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise KeyStoreAccessError(locator, "no certificate in PEM keystore") from e
    try:
        key = serialization.load_pem_private_key(data, password=passphrase.encode("utf-8") if passphrase else None)
    except TypeError as e:
        # encrypted key without password, or password given for a clear key
        raise InvalidCredentialsError(locator) from e
    except ValueError as e:
        if b"ENCRYPTED" in data:
            raise InvalidCredentialsError(locator) from e
        raise KeyStoreAccessError(locator, "no private key in PEM keystore") from e
    for cert in certs:
        if _common_name(cert) != alias:
            continue
        if _same_public_key(cert.public_key(), key.public_key()):
            return key, cert
        log.warning("keystore %s: alias %s has no matching private key", locator, alias)
        break
    raise CertificateNotFoundError(alias, locator)


def load_sender_material(locator: str, alias: str, provider: str, store_type: str, passphrase: str) -> KeyMaterial:
    if provider not in SUPPORTED_PROVIDERS:
        raise KeyStoreAccessError(locator, f"unsupported provider {provider!r}")
    kind = (store_type or "").upper()
    if kind not in SUPPORTED_STORE_TYPES:
        raise KeyStoreAccessError(locator, f"unsupported keystore type {store_type!r}")
    data = _read_locator(locator)
    if kind == "PKCS12":
        key, cert = _open_pkcs12(data, locator, alias, passphrase)
    else:
        key, cert = _open_pem(data, locator, alias, passphrase)
    log.info("loaded sender key %s (serial %x) from %s", alias, cert.serial_number, locator)
    return KeyMaterial(
        certificate=cert,
        public_key=cert.public_key(),
        provider=provider,
        alias=alias,
        private_key=key,
    )


def load_recipient_material(path: str, provider: str = "openssl") -> KeyMaterial:
    if not os.path.isfile(path):
        raise CertificateFileNotFoundError(path)
    try:
        with open(path, "rb") as f:
            pem = f.read()
    except OSError as e:
        raise CertificateParseError(path, e.strerror or str(e)) from e
    try:
        cert = x509.load_pem_x509_certificate(pem)
    except ValueError as e:
        raise CertificateParseError(path, str(e)) from e
    log.info("loaded recipient certificate %s", cert.subject.rfc4514_string())
    return KeyMaterial(certificate=cert, public_key=cert.public_key(), provider=provider)


class KeyMaterialProvider:
    """Loads both key materials from the configured locations."""

    def __init__(self, settings):
        self.settings = settings

    def load_sender(self) -> KeyMaterial:
        s = self.settings
        return load_sender_material(
            s.sender_keystore_file,
            s.sender_keystore_alias,
            s.sender_keystore_provider,
            s.sender_keystore_type,
            s.sender_keystore_password,
        )

    def load_recipient(self) -> KeyMaterial:
        return load_recipient_material(self.settings.recipient_key_file, self.settings.sender_keystore_provider)


__all__ = [
    "KeyMaterial",
    "KeyMaterialProvider",
    "load_sender_material",
    "load_recipient_material",
    "SUPPORTED_PROVIDERS",
    "SUPPORTED_STORE_TYPES",
]
