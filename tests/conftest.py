import datetime as dt
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from missive.crypto.keyloader import KeyMaterial
from missive.mail.compose import Missive

PASSWORD = "changeit"


def make_identity(cn: str, key=None):
    """Throwaway key + self-signed certificate."""
    if key is None:
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, cn),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Missive Test"),
        ]
    )
    now = dt.datetime.now(dt.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(days=1))
        .not_valid_after(now + dt.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return key, cert


def material(key, cert, alias=None) -> KeyMaterial:
    return KeyMaterial(certificate=cert, public_key=cert.public_key(), provider="openssl", alias=alias, private_key=key)


@pytest.fixture(scope="session")
def sender_identity():
    return make_identity("sender")


@pytest.fixture(scope="session")
def recipient_identity():
    return make_identity("recipient")


@pytest.fixture(scope="session")
def ec_identity():
    return make_identity("ec-sender", ec.generate_private_key(ec.SECP256R1()))


@pytest.fixture
def sender_material(sender_identity):
    return material(*sender_identity, alias="sender")


@pytest.fixture
def recipient_material(recipient_identity):
    return material(*recipient_identity)


@pytest.fixture
def missive():
    return Missive(
        subject="Invoice 2024-117",
        body="<missive>\n  <amount>117.00</amount>\n</missive>\n",
        sender_address="billing@sender.example",
        sender_name="Sender Billing",
        recipient_address="inbox@recipient.example",
        recipient_name="Recipient Inbox",
    )


@pytest.fixture
def p12_path(tmp_path: Path, sender_identity) -> Path:
    key, cert = sender_identity
    data = pkcs12.serialize_key_and_certificates(
        b"sender", key, cert, None, serialization.BestAvailableEncryption(PASSWORD.encode())
    )
    path = tmp_path / "sender.p12"
    path.write_bytes(data)
    return path


@pytest.fixture
def pem_keystore_path(tmp_path: Path, sender_identity) -> Path:
    key, cert = sender_identity
    pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.BestAvailableEncryption(PASSWORD.encode()),
    ) + cert.public_bytes(serialization.Encoding.PEM)
    path = tmp_path / "sender.pem"
    path.write_bytes(pem)
    return path


@pytest.fixture
def recipient_cert_path(tmp_path: Path, recipient_identity) -> Path:
    path = tmp_path / "recipient.crt"
    path.write_bytes(recipient_identity[1].public_bytes(serialization.Encoding.PEM))
    return path


class FakeTransport:
    def __init__(self, error=None):
        self.sent = []
        self.error = error

    def send(self, envelope, sender, recipients):
        if self.error:
            raise self.error
        self.sent.append((envelope, sender, list(recipients)))


class FakeArchive:
    def __init__(self, error=None):
        self.stored = []
        self.error = error

    def append(self, envelope):
        if self.error:
            raise self.error
        self.stored.append(envelope)
