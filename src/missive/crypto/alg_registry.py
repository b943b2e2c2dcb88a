"""Algorithm registry for CMS signing and content encryption.

Configuration names are resolved against a fixed table, built once at import
and never mutated. Names are matched exactly (case-sensitive):

  content ciphers  AES{128,192,256}_CBC, CAMELLIA{128,192,256}_CBC,
                   DES_EDE3_CBC, RC2_CBC, CAST5_CBC, SEED_CBC, IDEA_CBC
  key wrap         AES{128,192,256}_WRAP, CAMELLIA{128,192,256}_WRAP,
                   DES_EDE3_WRAP, SEED_WRAP
  key agreement    ECDH_SHA1KDF, ECMQV_SHA1KDF
  digests          MD5, SHA1, SHA224, SHA256, SHA384, SHA512,
                   RIPEMD128, RIPEMD160, RIPEMD256, GOST3411

The identifier handed out for each name is its registered ASN.1 object
identifier (dotted string), which is what ends up on the wire.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

from ..errors import UnsupportedAlgorithmError


class AlgorithmKind(str, Enum):
    CONTENT_CIPHER = "content-cipher"
    KEY_WRAP = "key-wrap"
    KEY_AGREEMENT = "key-agreement"
    DIGEST = "digest"


@dataclass(frozen=True)
class AlgorithmSpec:
    name: str
    oid: str
    kind: AlgorithmKind
    key_bits: int = 0

    @property
    def is_content_cipher(self) -> bool:
        return self.kind is AlgorithmKind.CONTENT_CIPHER

    @property
    def is_digest(self) -> bool:
        return self.kind is AlgorithmKind.DIGEST


_CC = AlgorithmKind.CONTENT_CIPHER
_KW = AlgorithmKind.KEY_WRAP
_KA = AlgorithmKind.KEY_AGREEMENT
_DG = AlgorithmKind.DIGEST

_TABLE: Tuple[Tuple[str, str, AlgorithmKind, int], ...] = (
    # NIST AES (RFC 3565 / RFC 3394)
    ("AES128_CBC", "2.16.840.1.101.3.4.1.2", _CC, 128),
    ("AES192_CBC", "2.16.840.1.101.3.4.1.22", _CC, 192),
    ("AES256_CBC", "2.16.840.1.101.3.4.1.42", _CC, 256),
    ("AES128_WRAP", "2.16.840.1.101.3.4.1.5", _KW, 128),
    ("AES192_WRAP", "2.16.840.1.101.3.4.1.25", _KW, 192),
    ("AES256_WRAP", "2.16.840.1.101.3.4.1.45", _KW, 256),
    # Camellia (RFC 3657)
    ("CAMELLIA128_CBC", "1.2.392.200011.61.1.1.1.2", _CC, 128),
    ("CAMELLIA192_CBC", "1.2.392.200011.61.1.1.1.3", _CC, 192),
    ("CAMELLIA256_CBC", "1.2.392.200011.61.1.1.1.4", _CC, 256),
    ("CAMELLIA128_WRAP", "1.2.392.200011.61.1.1.3.2", _KW, 128),
    ("CAMELLIA192_WRAP", "1.2.392.200011.61.1.1.3.3", _KW, 192),
    ("CAMELLIA256_WRAP", "1.2.392.200011.61.1.1.3.4", _KW, 256),
    # Triple DES (RFC 3370 / RFC 3217)
    ("DES_EDE3_CBC", "1.2.840.113549.3.7", _CC, 192),
    ("DES_EDE3_WRAP", "1.2.840.113549.1.9.16.3.6", _KW, 192),
    # legacy content ciphers
    ("RC2_CBC", "1.2.840.113549.3.2", _CC, 128),
    ("CAST5_CBC", "1.2.840.113533.7.66.10", _CC, 128),
    ("IDEA_CBC", "1.3.6.1.4.1.188.7.1.1.2", _CC, 128),
    # SEED (RFC 4010)
    ("SEED_CBC", "1.2.410.200004.1.4", _CC, 128),
    ("SEED_WRAP", "1.2.410.200004.7.1.1.1", _KW, 128),
    # EC key agreement schemes (RFC 3278 / RFC 5753)
    ("ECDH_SHA1KDF", "1.3.133.16.840.63.0.2", _KA, 0),
    ("ECMQV_SHA1KDF", "1.3.133.16.840.63.0.16", _KA, 0),
    # digests
    ("MD5", "1.2.840.113549.2.5", _DG, 128),
    ("SHA1", "1.3.14.3.2.26", _DG, 160),
    ("SHA224", "2.16.840.1.101.3.4.2.4", _DG, 224),
    ("SHA256", "2.16.840.1.101.3.4.2.1", _DG, 256),
    ("SHA384", "2.16.840.1.101.3.4.2.2", _DG, 384),
    ("SHA512", "2.16.840.1.101.3.4.2.3", _DG, 512),
    ("RIPEMD128", "1.3.36.3.2.2", _DG, 128),
    ("RIPEMD160", "1.3.36.3.2.1", _DG, 160),
    ("RIPEMD256", "1.3.36.3.2.3", _DG, 256),
    ("GOST3411", "1.2.643.2.2.9", _DG, 256),
)


def _build() -> Tuple[Mapping[str, AlgorithmSpec], Mapping[str, AlgorithmSpec]]:
    by_name: Dict[str, AlgorithmSpec] = {}
    by_oid: Dict[str, AlgorithmSpec] = {}
    for name, oid, kind, bits in _TABLE:
        if name in by_name or oid in by_oid:
            raise RuntimeError(f"duplicate algorithm table entry: {name} / {oid}")
        spec = AlgorithmSpec(name=name, oid=oid, kind=kind, key_bits=bits)
        by_name[name] = spec
        by_oid[oid] = spec
    return MappingProxyType(by_name), MappingProxyType(by_oid)


REGISTRY, _BY_OID = _build()


def resolve(name: str) -> AlgorithmSpec:
    try:
        return REGISTRY[name]
    except (KeyError, TypeError):
        raise UnsupportedAlgorithmError(str(name)) from None


def by_oid(oid: str) -> AlgorithmSpec:
    try:
        return _BY_OID[oid]
    except KeyError:
        raise UnsupportedAlgorithmError(oid) from None


def names() -> Tuple[str, ...]:
    return tuple(REGISTRY)


__all__ = ["AlgorithmKind", "AlgorithmSpec", "REGISTRY", "resolve", "by_oid", "names"]
