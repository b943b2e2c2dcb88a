"""S/MIME enveloping (CMS EnvelopedData with key transport, RFC 5652 §6).

Every call draws a fresh content-encryption key and IV, encrypts the signed
entity with the requested content cipher and wraps the key for exactly one
RSA certificate (KeyTransRecipientInfo, issuer + serial). The pipeline calls
``encrypt_for`` twice on the same SignedDocument, once for the external
recipient and once for the sender's own archive copy; envelopes are never
derived from one another.
"""
from __future__ import annotations

from dataclasses import dataclass
from email import message_from_bytes, policy
from email.message import EmailMessage
from typing import Tuple, Union

from asn1crypto import algos, cms, core
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..errors import EncryptionError, MissiveError
from ..mail.compose import CRLF, Header, base64_lines, fold_headers
from ..utils.logging import get_logger
from .alg_registry import AlgorithmSpec, by_oid, resolve
from .ciphers import cipher_for
from .keyloader import KeyMaterial
from .sign import SignedDocument, _asn1_certificate, _issuer_and_serial

log = get_logger(__name__)

KEY_TRANSPORTS = {
    "rsaes_pkcs1v15": "1.2.840.113549.1.1.1",
    "rsaes_oaep": "1.2.840.113549.1.1.7",
}

_OAEP_PARAMS = algos.RSAESOAEPParams(
    {
        "hash_algorithm": {"algorithm": "sha1"},
        "mask_gen_algorithm": {"algorithm": "mgf1", "parameters": {"algorithm": "sha1"}},
    }
)

ENVELOPE_HEADERS: Tuple[Header, ...] = (
    ("Content-Type", 'application/pkcs7-mime; smime-type=enveloped-data; name="smime.p7m"'),
    ("Content-Transfer-Encoding", "base64"),
    ("Content-Disposition", 'attachment; filename="smime.p7m"'),
    ("Content-Description", "S/MIME Encrypted Message"),
)


@dataclass(frozen=True)
class EncryptedEnvelope:
    headers: Tuple[Header, ...]
    entity: bytes
    enveloped_data: bytes
    algorithm: AlgorithmSpec
    recipient_issuer: str
    recipient_serial: int

    def as_bytes(self) -> bytes:
        return fold_headers(self.headers) + self.entity

    def as_message(self) -> EmailMessage:
        return message_from_bytes(self.as_bytes(), policy=policy.default)


def _oaep() -> padding.OAEP:
    # RSAES-OAEP-params: SHA-1 with MGF1-SHA1
    return padding.OAEP(mgf=padding.MGF1(hashes.SHA1()), algorithm=hashes.SHA1(), label=None)


def _key_encryption_algorithm(key_transport: str) -> Tuple[cms.KeyEncryptionAlgorithm, padding.AsymmetricPadding]:
    if key_transport == "rsaes_oaep":
        alg = cms.KeyEncryptionAlgorithm({"algorithm": KEY_TRANSPORTS["rsaes_oaep"], "parameters": _OAEP_PARAMS})
        return alg, _oaep()
    if key_transport == "rsaes_pkcs1v15":
        alg = cms.KeyEncryptionAlgorithm({"algorithm": KEY_TRANSPORTS["rsaes_pkcs1v15"], "parameters": core.Null()})
        return alg, padding.PKCS1v15()
    raise EncryptionError(f"unknown key transport {key_transport!r}")


def encrypt_for(
    signed: SignedDocument,
    recipient: KeyMaterial,
    content_algorithm: Union[str, AlgorithmSpec],
    key_transport: str = "rsaes_pkcs1v15",
) -> EncryptedEnvelope:
    spec = content_algorithm if isinstance(content_algorithm, AlgorithmSpec) else resolve(content_algorithm)
    try:
        der = _build_enveloped_data(signed, recipient, spec, key_transport)
    except MissiveError:
        raise
    except (ValueError, TypeError, KeyError, AttributeError, UnsupportedAlgorithm) as e:
        raise EncryptionError(str(e), algorithm=spec.name) from e

    entity = fold_headers(ENVELOPE_HEADERS) + CRLF + base64_lines(der)
    issuer = recipient.certificate.issuer.rfc4514_string()
    log.info("enveloped %d bytes with %s for %s (serial %x)", len(signed.entity), spec.name, issuer, recipient.certificate.serial_number)
    return EncryptedEnvelope(
        headers=signed.headers,
        entity=entity,
        enveloped_data=der,
        algorithm=spec,
        recipient_issuer=issuer,
        recipient_serial=recipient.certificate.serial_number,
    )


def _build_enveloped_data(signed: SignedDocument, recipient: KeyMaterial, spec: AlgorithmSpec, key_transport: str) -> bytes:
    try:
        cipher = cipher_for(spec)
    except ValueError as e:
        raise EncryptionError(str(e), algorithm=spec.name) from e
    public_key = recipient.public_key
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise EncryptionError(
            f"key transport needs an RSA certificate, got {type(public_key).__name__}", algorithm=spec.name
        )
    kea, pad = _key_encryption_algorithm(key_transport)

    cek = cipher.new_key()
    iv = cipher.new_iv()
    encrypted_content = cipher.encrypt(cek, iv, signed.entity)
    encrypted_key = public_key.encrypt(cek, pad)

    cert = _asn1_certificate(recipient.certificate)
    ktri = cms.KeyTransRecipientInfo(
        {
            "version": "v0",
            "rid": cms.RecipientIdentifier({"issuer_and_serial_number": _issuer_and_serial(cert)}),
            "key_encryption_algorithm": kea,
            "encrypted_key": encrypted_key,
        }
    )
    enveloped = cms.EnvelopedData(
        {
            "version": "v0",
            "recipient_infos": [cms.RecipientInfo({"ktri": ktri})],
            "encrypted_content_info": cms.EncryptedContentInfo(
                {
                    "content_type": "data",
                    "content_encryption_algorithm": algos.EncryptionAlgorithm(
                        {"algorithm": spec.oid, "parameters": cipher.encode_params(iv)}
                    ),
                    "encrypted_content": encrypted_content,
                }
            ),
        }
    )
    return cms.ContentInfo({"content_type": "enveloped_data", "content": enveloped}).dump()


def _enveloped_der(envelope: Union[EncryptedEnvelope, bytes]) -> bytes:
    if isinstance(envelope, EncryptedEnvelope):
        return envelope.enveloped_data
    msg = message_from_bytes(envelope, policy=policy.default)
    if msg.get_content_type() not in ("application/pkcs7-mime", "application/x-pkcs7-mime"):
        raise EncryptionError(f"not an S/MIME envelope: {msg.get_content_type()}")
    return msg.get_payload(decode=True)


def decrypt_envelope(envelope: Union[EncryptedEnvelope, bytes], holder: KeyMaterial) -> bytes:
    """Recover the signed entity bytes with the private key of ``holder``."""
    if not holder.has_private_key:
        raise EncryptionError("decryption needs a private key")
    try:
        info = cms.ContentInfo.load(_enveloped_der(envelope))
        if info["content_type"].native != "enveloped_data":
            raise EncryptionError(f"unexpected CMS content {info['content_type'].native}")
        enveloped = info["content"]
        me = _asn1_certificate(holder.certificate)
        ktri = None
        for ri in enveloped["recipient_infos"]:
            if ri.name != "ktri":
                continue
            rid = ri.chosen["rid"].chosen
            if rid["serial_number"].native == me.serial_number and rid["issuer"] == me.issuer:
                ktri = ri.chosen
                break
        if ktri is None:
            raise EncryptionError("no recipient info for this certificate")
        if ktri["key_encryption_algorithm"]["algorithm"].dotted == KEY_TRANSPORTS["rsaes_oaep"]:
            pad = _oaep()
        else:
            pad = padding.PKCS1v15()
        cek = holder.private_key.decrypt(ktri["encrypted_key"].native, pad)
        eci = enveloped["encrypted_content_info"]
        alg = eci["content_encryption_algorithm"]
        spec = by_oid(alg["algorithm"].dotted)
        cipher = cipher_for(spec)
        return cipher.decrypt(cek, cipher.decode_iv(alg["parameters"]), eci["encrypted_content"].native)
    except EncryptionError:
        raise
    except MissiveError as e:
        raise EncryptionError(str(e)) from e
    except (ValueError, TypeError, KeyError, UnsupportedAlgorithm) as e:
        raise EncryptionError(str(e)) from e


__all__ = ["EncryptedEnvelope", "encrypt_for", "decrypt_envelope", "KEY_TRANSPORTS"]
