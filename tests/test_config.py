from pathlib import Path

import pytest
import yaml

from missive.config import REQUIRED_KEYS, env_name, load_settings, parse_properties
from missive.errors import ConfigurationError

VALUES = {
    "sender.name": "Sender Billing",
    "sender.address": "billing@sender.example",
    "sender.keystore.file": "keys/sender.p12",
    "sender.keystore.alias": "sender",
    "sender.keystore.provider": "openssl",
    "sender.keystore.type": "PKCS12",
    "sender.keystore.password": "changeit",
    "recipient.address": "inbox@recipient.example",
    "recipient.key.file": "keys/recipient.crt",
    "smtp.host": "smtp.sender.example",
    "smtp.username": "billing",
    "smtp.password": "secret",
    "imap.host": "imap.sender.example",
    "imap.username": "billing",
    "imap.password": "secret",
    "imap.protocol": "imaps",
    "imap.folder": "Sent",
    "sign.algorithm": "SHA256withRSA",
    "smime.cms.algorithm": "AES256_CBC",
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in list(VALUES) + ["smtp.port", "timeout"]:
        monkeypatch.delenv(env_name(key), raising=False)
    monkeypatch.chdir(tmp_path)


def write_properties(path: Path, values) -> Path:
    path.write_text("# missive\n" + "".join(f"{k}={v}\n" for k, v in values.items()), encoding="utf-8")
    return path


def test_properties_file(tmp_path: Path):
    s = load_settings(write_properties(tmp_path / "missive.properties", VALUES))
    assert s.sender_keystore_type == "PKCS12"
    assert s.smtp_port == 25
    assert s.smtp_security == "none"
    assert s.sign_mode == "detached"
    assert s.smime_key_transport == "rsaes_pkcs1v15"
    assert s.recipient_name is None
    assert s.timeout == 30.0
    assert "changeit" not in repr(s)


def test_nested_yaml(tmp_path: Path):
    doc = {
        "sender": {
            "name": "Sender Billing",
            "address": "billing@sender.example",
            "keystore": {"file": "k.p12", "alias": "sender", "provider": "openssl", "type": "PKCS12", "password": 1234},
        },
        "recipient": {"name": "Inbox", "address": "inbox@recipient.example", "key": {"file": "r.crt"}},
        "smtp": {"host": "smtp", "port": 587, "security": "starttls", "username": "u", "password": "p"},
        "imap": {"host": "imap", "username": "u", "password": "p", "protocol": "imap", "folder": "Sent"},
        "sign": {"algorithm": "SHA256withRSA", "mode": "opaque"},
        "smime": {"cms": {"algorithm": "AES128_CBC"}},
    }
    path = tmp_path / "missive.yml"
    path.write_text(yaml.safe_dump(doc), encoding="utf-8")
    s = load_settings(path)
    assert s.smtp_port == 587
    assert s.smtp_security == "starttls"
    assert s.sender_keystore_password == "1234"
    assert s.recipient_name == "Inbox"
    assert s.sign_mode == "opaque"
    assert s.smime_cms_algorithm == "AES128_CBC"


def test_flat_yaml(tmp_path: Path):
    path = tmp_path / "missive.yaml"
    path.write_text(yaml.safe_dump(VALUES), encoding="utf-8")
    assert load_settings(path).imap_folder == "Sent"


def test_settings_are_frozen(tmp_path: Path):
    s = load_settings(write_properties(tmp_path / "m.properties", VALUES))
    with pytest.raises(Exception):
        s.smtp_host = "other"


def test_missing_file(tmp_path: Path):
    with pytest.raises(ConfigurationError) as ei:
        load_settings(tmp_path / "nope.yml")
    assert ei.value.reason == "file not found"


@pytest.mark.parametrize("name,text", [("m.properties", ""), ("m.yml", "   \n"), ("m.yml", "# only a comment\n")])
def test_empty_file(tmp_path: Path, name, text):
    path = tmp_path / name
    path.write_text(text)
    with pytest.raises(ConfigurationError) as ei:
        load_settings(path)
    assert ei.value.reason == "empty"


@pytest.mark.parametrize("key", REQUIRED_KEYS)
def test_required_key_missing(tmp_path: Path, key):
    values = {k: v for k, v in VALUES.items() if k != key}
    with pytest.raises(ConfigurationError) as ei:
        load_settings(write_properties(tmp_path / "m.properties", values))
    assert ei.value.key == key


def test_required_key_empty(tmp_path: Path):
    values = dict(VALUES, **{"smtp.host": "  "})
    with pytest.raises(ConfigurationError) as ei:
        load_settings(write_properties(tmp_path / "m.properties", values))
    assert ei.value.key == "smtp.host"
    assert ei.value.reason == "empty value"


@pytest.mark.parametrize(
    "key,value",
    [("smtp.port", "twenty-five"), ("smtp.port", "0"), ("smtp.security", "tls"), ("sign.mode", "inline"), ("imap.protocol", "pop3")],
)
def test_invalid_values(tmp_path: Path, key, value):
    values = dict(VALUES, **{key: value})
    with pytest.raises(ConfigurationError) as ei:
        load_settings(write_properties(tmp_path / "m.properties", values))
    assert ei.value.key == key


def test_environment_override(tmp_path: Path, monkeypatch):
    monkeypatch.setenv(env_name("smtp.port"), "2525")
    monkeypatch.setenv(env_name("sender.keystore.password"), "from-env")
    s = load_settings(write_properties(tmp_path / "m.properties", VALUES))
    assert env_name("sender.keystore.password") == "MISSIVE_SENDER_KEYSTORE_PASSWORD"
    assert s.smtp_port == 2525
    assert s.sender_keystore_password == "from-env"


def test_dotenv_file(tmp_path: Path, monkeypatch):
    # makes teardown unset whatever load_dotenv() puts into the environment
    monkeypatch.setenv("MISSIVE_TIMEOUT", "unset-at-teardown")
    monkeypatch.delenv("MISSIVE_TIMEOUT")
    (tmp_path / ".env").write_text("MISSIVE_TIMEOUT=5\n")
    s = load_settings(write_properties(tmp_path / "m.properties", VALUES))
    assert s.timeout == 5.0


def test_parse_properties_syntax():
    text = "! comment\n# comment\na.b = 1\nc.d:two\nlong=first \\\n  second\nempty=\n"
    assert parse_properties(text) == {"a.b": "1", "c.d": "two", "long": "first second", "empty": ""}
