"""Sign once, encrypt twice, send one copy and archive the other.

One ``run`` is one sequential chain for one missive. Everything up to and
including the SMTP submission is the delivery phase: a failure there ends the
run in FAILED and nothing has left the process. Everything after is the
archive phase: the recipient already has the message, so a failure there ends
in ARCHIVE_FAILED with ``delivered`` still true and the error reported as an
ArchiveError. Nothing is retried here; callers that retry deduplicate on
``PipelineResult.message_id``.
"""
from __future__ import annotations

from typing import Optional

from ..crypto.envelope import encrypt_for
from ..crypto.keyloader import KeyMaterialProvider
from ..crypto.sign import sign_document
from ..errors import ArchiveError, MissiveError
from ..mail.archive import ArchiveStore, ImapArchive
from ..mail.compose import Missive, compose
from ..mail.transport import SmtpTransport, TransportGateway
from ..utils.logging import get_logger
from .state import PipelineResult, Stage

log = get_logger(__name__)


class MissiveOrchestrator:
    def __init__(self, settings, keys: KeyMaterialProvider, transport: TransportGateway, archive: ArchiveStore):
        self.settings = settings
        self.keys = keys
        self.transport = transport
        self.archive = archive

    @classmethod
    def from_settings(cls, settings) -> "MissiveOrchestrator":
        transport = SmtpTransport(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            security=settings.smtp_security,
            timeout=settings.timeout,
        )
        archive = ImapArchive(
            host=settings.imap_host,
            username=settings.imap_username,
            password=settings.imap_password,
            folder=settings.imap_folder,
            protocol=settings.imap_protocol,
            port=settings.imap_port,
            timeout=settings.timeout,
        )
        return cls(settings, KeyMaterialProvider(settings), transport, archive)

    def missive_for(self, body: str, subject: str, message_id: Optional[str] = None) -> Missive:
        s = self.settings
        return Missive(
            subject=subject,
            body=body,
            sender_address=s.sender_address,
            sender_name=s.sender_name,
            recipient_address=s.recipient_address,
            recipient_name=s.recipient_name,
            message_id=message_id,
        )

    def _advance(self, result: PipelineResult, stage: Stage) -> None:
        previous = result.state
        result.advance(stage)
        log.info("missive %s: %s -> %s", result.message_id or "-", previous.value, stage.value)

    def _finish(self, result: PipelineResult, stage: Stage, err: MissiveError) -> PipelineResult:
        result.error = err
        self._advance(result, stage)
        log.warning("missive %s ended %s after %s: %s", result.message_id or "-", stage.value, result.failed_at.value, err)
        return result

    def run(self, missive: Missive) -> PipelineResult:
        s = self.settings
        result = PipelineResult(message_id=missive.message_id)
        try:
            sender = self.keys.load_sender()
            recipient = self.keys.load_recipient()
            self._advance(result, Stage.KEYS_LOADED)

            message = compose(missive)
            result.message_id = str(message["Message-ID"])
            self._advance(result, Stage.COMPOSED)

            signed = sign_document(message, sender, s.sign_algorithm, detached=s.sign_mode == "detached")
            # from here on only the certificate side of the sender is used
            sender = sender.public_view()
            self._advance(result, Stage.SIGNED)

            outbound = encrypt_for(signed, recipient.public_view(), s.smime_cms_algorithm, s.smime_key_transport)
            self._advance(result, Stage.ENCRYPTED_FOR_RECIPIENT)

            self.transport.send(outbound, missive.sender_address, [missive.recipient_address])
            self._advance(result, Stage.SENT)
        except MissiveError as e:
            return self._finish(result, Stage.FAILED, e)

        try:
            own_copy = encrypt_for(signed, sender, s.smime_cms_algorithm, s.smime_key_transport)
            self._advance(result, Stage.ENCRYPTED_FOR_SENDER)
            self.archive.append(own_copy)
            self._advance(result, Stage.ARCHIVED)
        except ArchiveError as e:
            return self._finish(result, Stage.ARCHIVE_FAILED, e)
        except Exception as e:
            # already sent: every later failure is an archive failure
            wrapped = ArchiveError(str(e) or type(e).__name__, folder=getattr(s, "imap_folder", None), stage=result.state.value)
            wrapped.__cause__ = e
            return self._finish(result, Stage.ARCHIVE_FAILED, wrapped)
        return result


__all__ = ["MissiveOrchestrator"]
