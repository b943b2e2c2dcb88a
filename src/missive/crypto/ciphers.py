"""Symmetric content-encryption primitives for CMS EnvelopedData.

Maps registry content-cipher names onto `cryptography` block ciphers (CBC
mode, PKCS#7 padding) and onto the ASN.1 parameter encoding each algorithm
uses in ContentEncryptionAlgorithmIdentifier:

  AES / Camellia / 3DES / SEED   OCTET STRING iv
  RC2                            RC2CBCParameter { version 58 (=128 bit), iv }  (RFC 3370)
  CAST5                          { iv, keyLength }                            (RFC 2144 / 2984)
  IDEA                           { iv OPTIONAL }

Camellia and the legacy algorithms come from the `decrepit` namespace of
`cryptography`; they are looked up only when actually used.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Dict

from asn1crypto import algos, core
from cryptography.hazmat.decrepit.ciphers import algorithms as decrepit
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .alg_registry import AlgorithmSpec

RC2_128_VERSION = 58


class Cast5CbcParameters(core.Sequence):
    _fields = [
        ("iv", core.OctetString, {"optional": True}),
        ("key_length", core.Integer),
    ]


class IdeaCbcParameters(core.Sequence):
    _fields = [
        ("iv", core.OctetString, {"optional": True}),
    ]


_PARAM_SPECS = {
    "iv": core.OctetString,
    "rc2": algos.Rc2Params,
    "cast5": Cast5CbcParameters,
    "idea": IdeaCbcParameters,
}


@dataclass(frozen=True)
class ContentCipher:
    name: str
    key_len: int
    block_size: int
    factory: Callable[[bytes], Any]
    params: str = "iv"

    def new_key(self) -> bytes:
        return os.urandom(self.key_len)

    def new_iv(self) -> bytes:
        return os.urandom(self.block_size)

    def encode_params(self, iv: bytes) -> core.Asn1Value:
        if self.params == "rc2":
            return algos.Rc2Params({"rc2_parameter_version": RC2_128_VERSION, "iv": iv})
        if self.params == "cast5":
            return Cast5CbcParameters({"iv": iv, "key_length": self.key_len * 8})
        if self.params == "idea":
            return IdeaCbcParameters({"iv": iv})
        return core.OctetString(iv)

    def decode_iv(self, value: core.Asn1Value) -> bytes:
        spec = _PARAM_SPECS[self.params]
        if isinstance(value, core.Any):
            value = value.parse(spec)
        if isinstance(value, core.OctetString):
            iv = value.native
        else:
            iv = value["iv"].native
        if not iv or len(iv) != self.block_size:
            raise ValueError(f"{self.name}: bad IV in algorithm parameters")
        return iv

    def _cipher(self, key: bytes, iv: bytes) -> Cipher:
        return Cipher(self.factory(key), modes.CBC(iv))

    def encrypt(self, key: bytes, iv: bytes, data: bytes) -> bytes:
        padder = padding.PKCS7(self.block_size * 8).padder()
        padded = padder.update(data) + padder.finalize()
        enc = self._cipher(key, iv).encryptor()
        return enc.update(padded) + enc.finalize()

    def decrypt(self, key: bytes, iv: bytes, data: bytes) -> bytes:
        dec = self._cipher(key, iv).decryptor()
        padded = dec.update(data) + dec.finalize()
        unpadder = padding.PKCS7(self.block_size * 8).unpadder()
        return unpadder.update(padded) + unpadder.finalize()


_CIPHERS: Dict[str, ContentCipher] = {
    "AES128_CBC": ContentCipher("AES128_CBC", 16, 16, algorithms.AES),
    "AES192_CBC": ContentCipher("AES192_CBC", 24, 16, algorithms.AES),
    "AES256_CBC": ContentCipher("AES256_CBC", 32, 16, algorithms.AES),
    "CAMELLIA128_CBC": ContentCipher("CAMELLIA128_CBC", 16, 16, lambda k: decrepit.Camellia(k)),
    "CAMELLIA192_CBC": ContentCipher("CAMELLIA192_CBC", 24, 16, lambda k: decrepit.Camellia(k)),
    "CAMELLIA256_CBC": ContentCipher("CAMELLIA256_CBC", 32, 16, lambda k: decrepit.Camellia(k)),
    "DES_EDE3_CBC": ContentCipher("DES_EDE3_CBC", 24, 8, lambda k: decrepit.TripleDES(k)),
    "RC2_CBC": ContentCipher("RC2_CBC", 16, 8, lambda k: decrepit.RC2(k), params="rc2"),
    "CAST5_CBC": ContentCipher("CAST5_CBC", 16, 8, lambda k: decrepit.CAST5(k), params="cast5"),
    "SEED_CBC": ContentCipher("SEED_CBC", 16, 16, lambda k: decrepit.SEED(k)),
    "IDEA_CBC": ContentCipher("IDEA_CBC", 16, 8, lambda k: decrepit.IDEA(k), params="idea"),
}


def cipher_for(spec: AlgorithmSpec) -> ContentCipher:
    if not spec.is_content_cipher:
        raise ValueError(f"{spec.name} is a {spec.kind.value} algorithm, not a content cipher")
    return _CIPHERS[spec.name]


__all__ = ["ContentCipher", "cipher_for"]
