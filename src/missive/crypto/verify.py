"""Relying-party checks for signed documents.

Verification recomputes the message digest over the signed content and checks
the SignerInfo signature over the DER signed attributes with the public key
of the embedded certificate that matches the signer identifier. It proves
integrity and origin relative to that certificate only; chaining it to a
trust anchor is out of scope.
"""
from __future__ import annotations

import re
from email import message_from_bytes, policy
from typing import List, Optional, Tuple, Union

from asn1crypto import cms
from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from ..errors import MissiveError, VerificationError
from .alg_registry import AlgorithmSpec, by_oid
from .digest import digest_bytes, hash_for
from .sign import ECDSA_OIDS, OID_ENCRYPT_KEY_PREF, OID_RSASSA_PSS, OID_SMIME_CAPABILITIES, SignedDocument, SMIMECapabilities

_BARE_LF = re.compile(rb"(?<!\r)\n")
_ECDSA = set(ECDSA_OIDS.values())


def _canonical(data: bytes) -> bytes:
    return _BARE_LF.sub(b"\r\n", data)


def split_signed(data: bytes) -> Tuple[Optional[bytes], bytes]:
    """Return (signed content or None for opaque, DER SignedData) from a signed message."""
    data = _canonical(data)
    msg = message_from_bytes(data, policy=policy.default)
    ctype = msg.get_content_type()
    if ctype == "multipart/signed":
        boundary = msg.get_boundary()
        if not boundary:
            raise VerificationError("multipart/signed without boundary")
        delim = b"--" + boundary.encode("ascii")
        body_at = data.find(b"\r\n\r\n") + 4
        start = data.find(delim + b"\r\n", body_at)
        if start < 0:
            raise VerificationError("signed part not found")
        start += len(delim) + 2
        end = data.find(b"\r\n" + delim, start)
        if end < 0:
            raise VerificationError("signed part not terminated")
        parts = msg.get_payload()
        if len(parts) != 2:
            raise VerificationError("multipart/signed must have exactly two parts")
        return data[start:end], parts[1].get_payload(decode=True)
    if ctype in ("application/pkcs7-mime", "application/x-pkcs7-mime"):
        return None, msg.get_payload(decode=True)
    raise VerificationError(f"not a signed message: {ctype}")


def _signed_data(der: bytes) -> cms.SignedData:
    try:
        info = cms.ContentInfo.load(der)
        if info["content_type"].native != "signed_data":
            raise VerificationError(f"unexpected CMS content {info['content_type'].native}")
        return info["content"]
    except ValueError as e:
        raise VerificationError(f"malformed SignedData: {e}") from e


def _signer_certificate(sd: cms.SignedData, signer: cms.SignerInfo) -> x509.Certificate:
    sid = signer["sid"].chosen
    for choice in sd["certificates"]:
        cert = choice.chosen
        if cert.serial_number == sid["serial_number"].native and cert.issuer == sid["issuer"]:
            return x509.load_der_x509_certificate(cert.dump())
    raise VerificationError("signer certificate not embedded")


def _attribute(signer: cms.SignerInfo, oid: str):
    for attr in signer["signed_attrs"]:
        if attr["type"].dotted == oid:
            return attr["values"][0]
    return None


def _check_signature(cert: x509.Certificate, signer: cms.SignerInfo, digest: AlgorithmSpec) -> None:
    # signed attributes are signed as a universal SET OF, not as the [0] field
    to_verify = b"\x31" + signer["signed_attrs"].dump()[1:]
    signature = signer["signature"].native
    sig_oid = signer["signature_algorithm"]["algorithm"].dotted
    h = hash_for(digest)
    key = cert.public_key()
    if isinstance(key, rsa.RSAPublicKey):
        if sig_oid == OID_RSASSA_PSS:
            pad = padding.PSS(mgf=padding.MGF1(h), salt_length=padding.PSS.AUTO)
        else:
            pad = padding.PKCS1v15()
        key.verify(signature, to_verify, pad, h)
    elif isinstance(key, ec.EllipticCurvePublicKey) and sig_oid in _ECDSA:
        key.verify(signature, to_verify, ec.ECDSA(h))
    else:
        raise VerificationError(f"unsupported signature algorithm {sig_oid}")


def verify_signature(der: bytes, content: Optional[bytes] = None) -> Tuple[x509.Certificate, bytes]:
    """Verify a DER SignedData; returns (signer certificate, signed content)."""
    sd = _signed_data(der)
    if len(sd["signer_infos"]) == 0:
        raise VerificationError("no signer")
    signer = sd["signer_infos"][0]
    if content is None:
        content = sd["encap_content_info"]["content"].native
        if content is None:
            raise VerificationError("detached signature without content")
    try:
        digest = by_oid(signer["digest_algorithm"]["algorithm"].dotted)
        expected = _attribute(signer, "1.2.840.113549.1.9.4")
        if expected is None or expected.native != digest_bytes(digest, content):
            raise VerificationError("message digest mismatch")
        cert = _signer_certificate(sd, signer)
        _check_signature(cert, signer, digest)
    except InvalidSignature as e:
        raise VerificationError("signature does not verify") from e
    except VerificationError:
        raise
    except MissiveError as e:
        raise VerificationError(str(e)) from e
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise VerificationError(str(e)) from e
    return cert, content


def verify_signed(document: Union[SignedDocument, bytes]) -> x509.Certificate:
    if isinstance(document, SignedDocument):
        data = document.as_bytes()
    else:
        data = document
    content, der = split_signed(data)
    cert, _ = verify_signature(der, content)
    return cert


def signed_content(document: Union[SignedDocument, bytes]) -> bytes:
    """The verified inner MIME entity of a signed message."""
    data = document.as_bytes() if isinstance(document, SignedDocument) else document
    content, der = split_signed(data)
    return verify_signature(der, content)[1]


def read_capabilities(document: Union[SignedDocument, bytes]) -> List[Tuple[str, Optional[int]]]:
    """Advertised (capability OID, parameter) pairs, in the signer's order."""
    der = document.signature if isinstance(document, SignedDocument) else split_signed(document)[1]
    signer = _signed_data(der)["signer_infos"][0]
    value = _attribute(signer, OID_SMIME_CAPABILITIES)
    if value is None:
        return []
    out = []
    for cap in SMIMECapabilities.load(value.dump()):
        param = cap["parameters"]
        out.append((cap["capability_id"].dotted, param.parse().native if param.contents else None))
    return out


def read_key_preference(document: Union[SignedDocument, bytes]) -> Optional[Tuple[bytes, int]]:
    """(issuer DER, serial) from smimeEncryptionKeyPreference, or None."""
    der = document.signature if isinstance(document, SignedDocument) else split_signed(document)[1]
    signer = _signed_data(der)["signer_infos"][0]
    value = _attribute(signer, OID_ENCRYPT_KEY_PREF)
    if value is None:
        return None
    ias = value.chosen
    return ias["issuer"].dump(), ias["serial_number"].native


__all__ = [
    "verify_signed",
    "verify_signature",
    "signed_content",
    "split_signed",
    "read_capabilities",
    "read_key_preference",
]
