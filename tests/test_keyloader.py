from pathlib import Path
from types import SimpleNamespace

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from conftest import PASSWORD, make_identity
from missive.crypto.keyloader import KeyMaterialProvider, load_recipient_material, load_sender_material
from missive.errors import (
    CertificateFileNotFoundError,
    CertificateNotFoundError,
    CertificateParseError,
    InvalidCredentialsError,
    KeyMaterialError,
    KeyStoreAccessError,
)


def test_pkcs12_loads_key_entry(p12_path: Path, sender_identity):
    km = load_sender_material(str(p12_path), "sender", "openssl", "PKCS12", PASSWORD)
    assert km.has_private_key
    assert km.certificate == sender_identity[1]
    assert km.alias == "sender"
    assert km.provider == "openssl"


def test_store_type_is_case_insensitive(p12_path: Path):
    assert load_sender_material(str(p12_path), "sender", "openssl", "pkcs12", PASSWORD).has_private_key


def test_pkcs12_wrong_password(p12_path: Path):
    with pytest.raises(InvalidCredentialsError) as ei:
        load_sender_material(str(p12_path), "sender", "openssl", "PKCS12", "wrong")
    assert ei.value.locator == str(p12_path)


def test_pkcs12_unknown_alias(p12_path: Path):
    with pytest.raises(CertificateNotFoundError) as ei:
        load_sender_material(str(p12_path), "someone-else", "openssl", "PKCS12", PASSWORD)
    assert ei.value.alias == "someone-else"


def test_pkcs12_certificate_only_alias_is_not_a_key_entry(tmp_path: Path, sender_identity):
    key, cert = sender_identity
    _, extra = make_identity("trusted")
    bag = pkcs12.PKCS12Certificate(extra, b"trusted")
    data = pkcs12.serialize_key_and_certificates(
        b"sender", key, cert, [bag], serialization.BestAvailableEncryption(PASSWORD.encode())
    )
    path = tmp_path / "mixed.p12"
    path.write_bytes(data)
    with pytest.raises(CertificateNotFoundError):
        load_sender_material(str(path), "trusted", "openssl", "PKCS12", PASSWORD)


def test_missing_keystore(tmp_path: Path):
    with pytest.raises(KeyStoreAccessError):
        load_sender_material(str(tmp_path / "nope.p12"), "sender", "openssl", "PKCS12", PASSWORD)


@pytest.mark.parametrize("provider,store_type", [("BC", "PKCS12"), ("openssl", "JKS")])
def test_unsupported_provider_or_type(p12_path: Path, provider, store_type):
    with pytest.raises(KeyStoreAccessError):
        load_sender_material(str(p12_path), "sender", provider, store_type, PASSWORD)


def test_pem_keystore_alias_is_common_name(pem_keystore_path: Path, sender_identity):
    km = load_sender_material(str(pem_keystore_path), "sender", "openssl", "PEM", PASSWORD)
    assert km.certificate == sender_identity[1]
    with pytest.raises(CertificateNotFoundError):
        load_sender_material(str(pem_keystore_path), "recipient", "openssl", "PEM", PASSWORD)


def test_pem_keystore_wrong_password(pem_keystore_path: Path):
    with pytest.raises(InvalidCredentialsError):
        load_sender_material(str(pem_keystore_path), "sender", "openssl", "PEM", "wrong")


def test_recipient_certificate(recipient_cert_path: Path, recipient_identity):
    km = load_recipient_material(str(recipient_cert_path))
    assert km.certificate == recipient_identity[1]
    assert not km.has_private_key


def test_recipient_certificate_missing(tmp_path: Path):
    with pytest.raises(CertificateFileNotFoundError) as ei:
        load_recipient_material(str(tmp_path / "missing.crt"))
    assert isinstance(ei.value, KeyMaterialError)


def test_recipient_certificate_malformed(tmp_path: Path):
    path = tmp_path / "broken.crt"
    path.write_text("-----BEGIN CERTIFICATE-----\nnot base64\n-----END CERTIFICATE-----\n")
    with pytest.raises(CertificateParseError):
        load_recipient_material(str(path))


def test_public_view_drops_private_key(sender_material):
    view = sender_material.public_view()
    assert not view.has_private_key
    assert view.certificate == sender_material.certificate
    assert "private_key" not in repr(sender_material)


def test_provider_uses_settings(p12_path: Path, recipient_cert_path: Path):
    settings = SimpleNamespace(
        sender_keystore_file=str(p12_path),
        sender_keystore_alias="sender",
        sender_keystore_provider="openssl",
        sender_keystore_type="PKCS12",
        sender_keystore_password=PASSWORD,
        recipient_key_file=str(recipient_cert_path),
    )
    keys = KeyMaterialProvider(settings)
    assert keys.load_sender().has_private_key
    assert not keys.load_recipient().has_private_key
