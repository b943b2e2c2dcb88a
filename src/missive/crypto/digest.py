from typing import Dict, Type

from cryptography.hazmat.primitives import hashes

from .alg_registry import AlgorithmSpec

# digests the OpenSSL backend can hash and sign with
_HASHES: Dict[str, Type[hashes.HashAlgorithm]] = {
    "MD5": hashes.MD5,
    "SHA1": hashes.SHA1,
    "SHA224": hashes.SHA224,
    "SHA256": hashes.SHA256,
    "SHA384": hashes.SHA384,
    "SHA512": hashes.SHA512,
}

# RFC 5751 section 3.4.3.2 micalg values
_MICALG = {
    "MD5": "md5",
    "SHA1": "sha-1",
    "SHA224": "sha-224",
    "SHA256": "sha-256",
    "SHA384": "sha-384",
    "SHA512": "sha-512",
}


def hash_for(spec: AlgorithmSpec) -> hashes.HashAlgorithm:
    if spec.name not in _HASHES:
        raise ValueError(f"digest {spec.name} not available in this backend")
    return _HASHES[spec.name]()


def digest_bytes(spec: AlgorithmSpec, data: bytes) -> bytes:
    h = hashes.Hash(hash_for(spec))
    h.update(data)
    return h.finalize()


def micalg_for(spec: AlgorithmSpec) -> str:
    return _MICALG.get(spec.name, spec.name.lower())
