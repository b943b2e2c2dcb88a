"""S/MIME signing (CMS SignedData, RFC 5652 / RFC 5751).

The signer takes the composed message and produces a SignedDocument:

  * the original non-framing headers, unchanged
  * a new signature entity, either
      multipart/signed (detached signature, the default), or
      application/pkcs7-mime; smime-type=signed-data (opaque)

The SignerInfo carries signed attributes contentType, signingTime,
messageDigest, smimeCapabilities (our accepted content ciphers, in preference
order) and smimeEncryptionKeyPreference (issuer + serial of the sender
certificate, the key a correspondent should encrypt replies to). The sender
certificate travels in SignedData.certificates.

Signature algorithm names are either a registry digest name ("SHA256") or the
JCA form "<DIGEST>with<KEY>": SHA256withRSA, SHA256withECDSA,
SHA256withRSAandMGF1 (RSASSA-PSS).
"""
from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from email import message_from_bytes, policy
from email.message import EmailMessage
from typing import List, Optional, Tuple

from asn1crypto import algos, cms, core
from asn1crypto import x509 as asn1_x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from ..errors import SigningError
from ..mail.compose import CRLF, Header, base64_lines, content_entity, fold_headers, outer_headers
from ..utils.logging import get_logger
from .alg_registry import AlgorithmSpec, resolve
from .digest import digest_bytes, hash_for, micalg_for
from .keyloader import KeyMaterial

log = get_logger(__name__)

# advertised in this order; RC2 carries its effective key size as parameter
CAPABILITIES: Tuple[Tuple[str, Optional[int]], ...] = (
    ("AES128_CBC", None),
    ("AES192_CBC", None),
    ("AES256_CBC", None),
    ("DES_EDE3_CBC", None),
    ("RC2_CBC", 128),
)

OID_SMIME_CAPABILITIES = "1.2.840.113549.1.9.15"
OID_ENCRYPT_KEY_PREF = "1.2.840.113549.1.9.16.2.11"

OID_RSA = "1.2.840.113549.1.1.1"
OID_RSASSA_PSS = "1.2.840.113549.1.1.10"
OID_MGF1 = "1.2.840.113549.1.1.8"
ECDSA_OIDS = {
    "SHA1": "1.2.840.10045.4.1",
    "SHA224": "1.2.840.10045.4.3.1",
    "SHA256": "1.2.840.10045.4.3.2",
    "SHA384": "1.2.840.10045.4.3.3",
    "SHA512": "1.2.840.10045.4.3.4",
}

_JCA_NAME = re.compile(r"^(?P<digest>[A-Z0-9]+)with(?P<scheme>RSAandMGF1|RSA|ECDSA)$")

SIGNED_PREAMBLE = b"This is an S/MIME signed message"


class SMIMECapability(core.Sequence):
    _fields = [
        ("capability_id", core.ObjectIdentifier),
        ("parameters", core.Any, {"optional": True}),
    ]


class SMIMECapabilities(core.SequenceOf):
    _child_spec = SMIMECapability


class _AnySet(core.SetOf):
    _child_spec = core.Any


class _Attribute(core.Sequence):
    _fields = [
        ("type", core.ObjectIdentifier),
        ("values", _AnySet),
    ]


@dataclass(frozen=True)
class SignedDocument:
    headers: Tuple[Header, ...]
    entity: bytes
    signature: bytes
    digest: AlgorithmSpec
    content: bytes
    detached: bool = True

    def as_bytes(self) -> bytes:
        return fold_headers(self.headers) + self.entity

    def as_message(self) -> EmailMessage:
        return message_from_bytes(self.as_bytes(), policy=policy.default)


def parse_signature_algorithm(name: str) -> Tuple[AlgorithmSpec, Optional[str]]:
    m = _JCA_NAME.match(name or "")
    if m:
        digest, scheme = resolve(m.group("digest")), m.group("scheme")
    else:
        digest, scheme = resolve(name), None
    if not digest.is_digest:
        raise SigningError(f"{digest.name} is not a digest algorithm", algorithm=name)
    return digest, scheme


def _asn1_certificate(cert) -> asn1_x509.Certificate:
    return asn1_x509.Certificate.load(cert.public_bytes(serialization.Encoding.DER))


def _issuer_and_serial(cert: asn1_x509.Certificate) -> cms.IssuerAndSerialNumber:
    return cms.IssuerAndSerialNumber({"issuer": cert.issuer, "serial_number": cert.serial_number})


def _load_attribute(oid: str, value: core.Asn1Value) -> cms.CMSAttribute:
    raw = _Attribute({"type": oid, "values": [value]}).dump()
    return cms.CMSAttribute.load(raw)


def capabilities_attribute() -> cms.CMSAttribute:
    caps = []
    for name, param in CAPABILITIES:
        entry = {"capability_id": resolve(name).oid}
        if param is not None:
            entry["parameters"] = core.Integer(param)
        caps.append(SMIMECapability(entry))
    return _load_attribute(OID_SMIME_CAPABILITIES, SMIMECapabilities(caps))


def key_preference_attribute(cert: asn1_x509.Certificate) -> cms.CMSAttribute:
    pref = cms.SMIMEEncryptionKeyPreference({"issuer_and_serial_number": _issuer_and_serial(cert)})
    return cms.CMSAttribute({"type": "encrypt_key_pref", "values": [pref]})


def _signed_attributes(digest_value: bytes, cert: asn1_x509.Certificate) -> cms.CMSAttributes:
    attrs = [
        cms.CMSAttribute({"type": "content_type", "values": ["data"]}),
        cms.CMSAttribute({"type": "signing_time", "values": [cms.Time({"utc_time": datetime.now(timezone.utc)})]}),
        cms.CMSAttribute({"type": "message_digest", "values": [digest_value]}),
        capabilities_attribute(),
        key_preference_attribute(cert),
    ]
    # DER SET OF: elements ordered by their encoding
    attrs.sort(key=lambda a: a.dump())
    return cms.CMSAttributes(attrs)


def _signature_scheme(private_key, digest: AlgorithmSpec, scheme: Optional[str], name: str):
    """Return (signature algorithm identifier, sign callable) for the key type."""
    h = hash_for(digest)
    if isinstance(private_key, rsa.RSAPrivateKey):
        if scheme == "ECDSA":
            raise SigningError("ECDSA signature requested for an RSA key", algorithm=name)
        if scheme == "RSAandMGF1":
            params = algos.RSASSAPSSParams(
                {
                    "hash_algorithm": {"algorithm": digest.oid},
                    "mask_gen_algorithm": {"algorithm": OID_MGF1, "parameters": {"algorithm": digest.oid}},
                    "salt_length": h.digest_size,
                }
            )
            sig_alg = algos.SignedDigestAlgorithm({"algorithm": OID_RSASSA_PSS, "parameters": params})
            pad = padding.PSS(mgf=padding.MGF1(h), salt_length=h.digest_size)
            return sig_alg, lambda data: private_key.sign(data, pad, h)
        sig_alg = algos.SignedDigestAlgorithm({"algorithm": OID_RSA, "parameters": core.Null()})
        return sig_alg, lambda data: private_key.sign(data, padding.PKCS1v15(), h)
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        if scheme not in (None, "ECDSA"):
            raise SigningError(f"{scheme} signature requested for an EC key", algorithm=name)
        if digest.name not in ECDSA_OIDS:
            raise SigningError(f"ECDSA is not defined with {digest.name}", algorithm=name)
        sig_alg = algos.SignedDigestAlgorithm({"algorithm": ECDSA_OIDS[digest.name]})
        return sig_alg, lambda data: private_key.sign(data, ec.ECDSA(h))
    raise SigningError(f"unsupported signing key type {type(private_key).__name__}", algorithm=name)


def build_signed_data(content: bytes, sender: KeyMaterial, signature_algorithm: str, detached: bool = True) -> Tuple[bytes, AlgorithmSpec]:
    """CMS ContentInfo(SignedData) over ``content``; returns (DER, digest spec)."""
    digest, scheme = parse_signature_algorithm(signature_algorithm)
    if not sender.has_private_key:
        raise SigningError("sender key material has no private key", algorithm=signature_algorithm)
    try:
        digest_value = digest_bytes(digest, content)
        cert = _asn1_certificate(sender.certificate)
        signed_attrs = _signed_attributes(digest_value, cert)
        sig_alg, sign = _signature_scheme(sender.private_key, digest, scheme, signature_algorithm)
        signature = sign(signed_attrs.dump())
    except SigningError:
        raise
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningError(str(e), algorithm=signature_algorithm) from e

    signer_info = cms.SignerInfo(
        {
            "version": "v1",
            "sid": cms.SignerIdentifier({"issuer_and_serial_number": _issuer_and_serial(cert)}),
            "digest_algorithm": algos.DigestAlgorithm({"algorithm": digest.oid}),
            "signed_attrs": signed_attrs,
            "signature_algorithm": sig_alg,
            "signature": signature,
        }
    )
    encap = {"content_type": "data"}
    if not detached:
        encap["content"] = content
    signed_data = cms.SignedData(
        {
            "version": "v1",
            "digest_algorithms": [algos.DigestAlgorithm({"algorithm": digest.oid})],
            "encap_content_info": encap,
            "certificates": [cert],
            "signer_infos": [signer_info],
        }
    )
    return cms.ContentInfo({"content_type": "signed_data", "content": signed_data}).dump(), digest


def _multipart_signed(content: bytes, signature: bytes, micalg: str) -> bytes:
    boundary = "----=_missive_" + secrets.token_hex(12)
    delim = b"--" + boundary.encode("ascii")
    head: List[Header] = [
        (
            "Content-Type",
            f'multipart/signed; protocol="application/pkcs7-signature"; micalg="{micalg}"; boundary="{boundary}"',
        )
    ]
    sig_part = fold_headers(
        [
            ("Content-Type", 'application/pkcs7-signature; name="smime.p7s"'),
            ("Content-Transfer-Encoding", "base64"),
            ("Content-Disposition", 'attachment; filename="smime.p7s"'),
            ("Content-Description", "S/MIME Cryptographic Signature"),
        ]
    ) + CRLF + base64_lines(signature)
    # the CRLF in front of each delimiter belongs to the delimiter (RFC 2046)
    body = (
        SIGNED_PREAMBLE + CRLF + CRLF
        + delim + CRLF + content + CRLF
        + delim + CRLF + sig_part + CRLF
        + delim + b"--" + CRLF
    )
    return fold_headers(head) + CRLF + body


def _opaque_signed(signature: bytes) -> bytes:
    head = [
        ("Content-Type", 'application/pkcs7-mime; smime-type=signed-data; name="smime.p7m"'),
        ("Content-Transfer-Encoding", "base64"),
        ("Content-Disposition", 'attachment; filename="smime.p7m"'),
    ]
    return fold_headers(head) + CRLF + base64_lines(signature)


def sign_document(message: EmailMessage, sender: KeyMaterial, signature_algorithm: str, detached: bool = True) -> SignedDocument:
    content = content_entity(message)
    der, digest = build_signed_data(content, sender, signature_algorithm, detached=detached)
    if detached:
        entity = _multipart_signed(content, der, micalg_for(digest))
    else:
        entity = _opaque_signed(der)
    log.info("signed %d byte entity with %s (%s)", len(content), signature_algorithm, "detached" if detached else "opaque")
    return SignedDocument(
        headers=tuple(outer_headers(message)),
        entity=entity,
        signature=der,
        digest=digest,
        content=content,
        detached=detached,
    )


__all__ = [
    "CAPABILITIES",
    "SignedDocument",
    "SMIMECapabilities",
    "sign_document",
    "build_signed_data",
    "parse_signature_algorithm",
]
