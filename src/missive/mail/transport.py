"""SMTP submission of the recipient-bound envelope."""
from __future__ import annotations

import smtplib
import ssl
from typing import Optional, Protocol, Sequence

from ..errors import TransportError
from ..utils.logging import get_logger

log = get_logger(__name__)

SECURITY_MODES = ("none", "starttls", "ssl")


class TransportGateway(Protocol):
    def send(self, envelope, sender: str, recipients: Sequence[str]) -> None: ...


class SmtpTransport:
    def __init__(
        self,
        host: str,
        port: int = 25,
        username: Optional[str] = None,
        password: Optional[str] = None,
        security: str = "none",
        timeout: float = 30.0,
    ):
        if security not in SECURITY_MODES:
            raise ValueError(f"unknown smtp security mode {security!r}")
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.security = security
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        if self.security == "ssl":
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=ssl.create_default_context())
        return smtplib.SMTP(self.host, self.port, timeout=self.timeout)

    def send(self, envelope, sender: str, recipients: Sequence[str]) -> None:
        """Submit ``envelope.as_bytes()`` unchanged; raises TransportError."""
        if not recipients:
            raise TransportError("no recipients", host=self.host, port=self.port)
        data = envelope.as_bytes()
        try:
            server = self._connect()
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"connect failed: {e}", host=self.host, port=self.port) from e
        try:
            if self.security == "starttls":
                server.ehlo()
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            if self.username:
                server.login(self.username, self.password or "")
            refused = server.sendmail(sender, list(recipients), data)
            if refused:
                raise TransportError(f"recipients refused: {', '.join(sorted(refused))}", host=self.host, port=self.port)
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(str(e) or type(e).__name__, host=self.host, port=self.port) from e
        finally:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError):
                log.debug("smtp quit failed host=%s", self.host)
        log.info("submitted %d bytes to %s:%s for %s", len(data), self.host, self.port, ", ".join(recipients))


__all__ = ["TransportGateway", "SmtpTransport", "SECURITY_MODES"]
