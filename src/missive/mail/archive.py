"""IMAP archive of the sender-bound envelope ("Sent items" copy).

The folder must already exist; it is never created. A missing folder is an
ArchiveError with reason "folder not found" so operators can tell a
misconfigured folder name from a network problem.
"""
from __future__ import annotations

import imaplib
import time
from typing import Optional, Protocol

from ..errors import ArchiveError
from ..utils.logging import get_logger

log = get_logger(__name__)

PROTOCOLS = ("imap", "imaps")
DEFAULT_PORTS = {"imap": 143, "imaps": 993}


class ArchiveStore(Protocol):
    def append(self, envelope) -> None: ...


def _quote(folder: str) -> str:
    return '"' + folder.replace("\\", "\\\\").replace('"', '\\"') + '"'


class ImapArchive:
    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        folder: str,
        protocol: str = "imaps",
        port: Optional[int] = None,
        timeout: float = 30.0,
    ):
        if protocol not in PROTOCOLS:
            raise ValueError(f"unknown imap protocol {protocol!r}")
        self.host = host
        self.username = username
        self.password = password
        self.folder = folder
        self.protocol = protocol
        self.port = port or DEFAULT_PORTS[protocol]
        self.timeout = timeout

    def _error(self, reason: str, stage: str) -> ArchiveError:
        return ArchiveError(reason, folder=self.folder, host=self.host, username=self.username, stage=stage)

    def _connect(self) -> imaplib.IMAP4:
        if self.protocol == "imaps":
            return imaplib.IMAP4_SSL(self.host, self.port, timeout=self.timeout)
        return imaplib.IMAP4(self.host, self.port, timeout=self.timeout)

    def append(self, envelope) -> None:
        data = envelope.as_bytes()
        try:
            server = self._connect()
        except (imaplib.IMAP4.error, OSError, ValueError) as e:
            raise self._error(f"connect failed: {e}", "connect") from e
        try:
            try:
                server.login(self.username, self.password)
            except imaplib.IMAP4.error as e:
                raise self._error(f"login rejected: {e}", "login") from e
            typ, listing = server.list('""', _quote(self.folder))
            if typ != "OK" or not [entry for entry in listing if entry]:
                raise self._error("folder not found", "select")
            typ, resp = server.append(_quote(self.folder), "\\Seen", imaplib.Time2Internaldate(time.time()), data)
            if typ != "OK":
                raise self._error(f"append refused: {resp!r}", "append")
        except ArchiveError:
            raise
        except (imaplib.IMAP4.error, OSError, ValueError) as e:
            raise self._error(str(e) or type(e).__name__, "append") from e
        finally:
            try:
                server.logout()
            except (imaplib.IMAP4.error, OSError, ValueError):
                log.debug("imap logout failed host=%s", self.host)
        log.info("archived %d bytes to %s on %s", len(data), self.folder, self.host)


__all__ = ["ArchiveStore", "ImapArchive", "PROTOCOLS"]
