"""Missive -> RFC 5322 message, plus the header rules shared by the signer and
the envelope encryptor.

Headers are split in two groups. Content-framing headers (every ``Content-*``
field) describe how one particular body is packaged and are regenerated at
each S/MIME layer. All other headers (From, To, Subject, Date, Message-ID,
MIME-Version, ...) are carried over unchanged onto each layer.
"""
from __future__ import annotations

import base64
from dataclasses import dataclass
from email import policy
from email.message import EmailMessage, MIMEPart
from email.utils import formataddr, formatdate, make_msgid
from typing import Iterable, List, Optional, Tuple

Header = Tuple[str, str]

CRLF = b"\r\n"
WIRE = policy.SMTP


@dataclass(frozen=True)
class Missive:
    subject: str
    body: str
    sender_address: str
    sender_name: str
    recipient_address: str
    recipient_name: Optional[str] = None
    message_id: Optional[str] = None


def is_content_framing(name: str) -> bool:
    return name.lower().startswith("content-")


def outer_headers(msg: EmailMessage) -> List[Header]:
    """Non-framing headers of ``msg``, in order, values as stored.

    Header objects are kept as they are so non-ASCII values are re-encoded
    (RFC 2047) when folded for the wire.
    """
    return [(k, v) for k, v in msg.raw_items() if not is_content_framing(k)]


def content_entity(msg: EmailMessage) -> bytes:
    """The MIME entity (framing headers + body) of ``msg`` in canonical CRLF form."""
    part = MIMEPart(policy=WIRE)
    for k, v in msg.raw_items():
        if is_content_framing(k):
            part[k] = v
    part.set_payload(msg.get_payload())
    return part.as_bytes(policy=WIRE)


def fold_headers(headers: Iterable[Header]) -> bytes:
    return b"".join(WIRE.fold_binary(k, v) for k, v in headers)


def base64_lines(data: bytes) -> bytes:
    # 76 character lines, the MIME maximum
    encoded = base64.b64encode(data)
    return CRLF.join(encoded[i : i + 76] for i in range(0, len(encoded), 76)) + CRLF


def compose(missive: Missive) -> EmailMessage:
    msg = EmailMessage(policy=policy.default)
    msg["From"] = formataddr((missive.sender_name, missive.sender_address))
    if missive.recipient_name:
        msg["To"] = formataddr((missive.recipient_name, missive.recipient_address))
    else:
        msg["To"] = missive.recipient_address
    msg["Subject"] = missive.subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = missive.message_id or make_msgid(domain=missive.sender_address.rpartition("@")[2] or None)
    msg.set_content(missive.body, subtype="plain", charset="utf-8", cte="quoted-printable")
    return msg


__all__ = [
    "Missive",
    "Header",
    "compose",
    "is_content_framing",
    "outer_headers",
    "content_entity",
    "fold_headers",
    "base64_lines",
]
