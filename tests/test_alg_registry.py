import pytest

from missive.crypto.alg_registry import REGISTRY, AlgorithmKind, by_oid, names, resolve
from missive.crypto.ciphers import cipher_for
from missive.errors import UnsupportedAlgorithmError

CONTENT = [
    "AES128_CBC", "AES192_CBC", "AES256_CBC",
    "CAMELLIA128_CBC", "CAMELLIA192_CBC", "CAMELLIA256_CBC",
    "DES_EDE3_CBC", "RC2_CBC", "CAST5_CBC", "SEED_CBC", "IDEA_CBC",
]
WRAP = [
    "AES128_WRAP", "AES192_WRAP", "AES256_WRAP",
    "CAMELLIA128_WRAP", "CAMELLIA192_WRAP", "CAMELLIA256_WRAP",
    "DES_EDE3_WRAP", "SEED_WRAP",
]
AGREEMENT = ["ECDH_SHA1KDF", "ECMQV_SHA1KDF"]
DIGESTS = ["MD5", "SHA1", "SHA224", "SHA256", "SHA384", "SHA512", "RIPEMD128", "RIPEMD160", "RIPEMD256", "GOST3411"]


def test_table_is_complete_and_distinct():
    assert sorted(names()) == sorted(CONTENT + WRAP + AGREEMENT + DIGESTS)
    oids = [spec.oid for spec in REGISTRY.values()]
    assert len(set(oids)) == len(oids)


@pytest.mark.parametrize(
    "group,kind",
    [(CONTENT, AlgorithmKind.CONTENT_CIPHER), (WRAP, AlgorithmKind.KEY_WRAP),
     (AGREEMENT, AlgorithmKind.KEY_AGREEMENT), (DIGESTS, AlgorithmKind.DIGEST)],
)
def test_kinds(group, kind):
    for name in group:
        assert resolve(name).kind is kind


def test_known_identifiers():
    assert resolve("AES128_CBC").oid == "2.16.840.1.101.3.4.1.2"
    assert resolve("DES_EDE3_CBC").oid == "1.2.840.113549.3.7"
    assert resolve("SHA256").oid == "2.16.840.1.101.3.4.2.1"
    assert resolve("AES256_CBC").key_bits == 256


def test_lookup_by_oid_round_trips():
    for name in names():
        assert by_oid(resolve(name).oid).name == name


@pytest.mark.parametrize("bad", ["aes128_cbc", "AES128", "", "BLOWFISH_CBC", None])
def test_unknown_names_rejected(bad):
    with pytest.raises(UnsupportedAlgorithmError) as ei:
        resolve(bad)
    assert ei.value.code == "unsupported_algorithm"


@pytest.mark.parametrize("name", ["ECDH_SHA224KDF", "ECDH_SHA256KDF", "ECDH_SHA384KDF", "ECDH_SHA512KDF"])
def test_only_sha1_key_agreement_names(name):
    with pytest.raises(UnsupportedAlgorithmError):
        resolve(name)


def test_registry_is_read_only():
    with pytest.raises(TypeError):
        REGISTRY["X"] = resolve("SHA1")  # type: ignore[index]


@pytest.mark.parametrize("name", CONTENT)
def test_every_content_cipher_has_a_primitive(name):
    cipher = cipher_for(resolve(name))
    assert cipher.key_len * 8 == resolve(name).key_bits


@pytest.mark.parametrize("name", ["SHA256", "AES128_WRAP", "ECDH_SHA1KDF"])
def test_non_content_algorithms_have_no_cipher(name):
    with pytest.raises(ValueError):
        cipher_for(resolve(name))
