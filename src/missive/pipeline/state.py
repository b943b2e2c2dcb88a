"""Pipeline stages and the per-run result.

Stages advance strictly forward:

    INIT -> KEYS_LOADED -> COMPOSED -> SIGNED -> ENCRYPTED_FOR_RECIPIENT
         -> SENT -> ENCRYPTED_FOR_SENDER -> ARCHIVED

Terminal states are ARCHIVED, ARCHIVE_FAILED (delivered, no archive copy) and
FAILED (nothing was sent or archived).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..errors import MissiveError

__all__ = ["Stage", "PipelineResult", "FORWARD", "TERMINAL"]


class Stage(str, Enum):
    INIT = "Init"
    KEYS_LOADED = "KeysLoaded"
    COMPOSED = "Composed"
    SIGNED = "Signed"
    ENCRYPTED_FOR_RECIPIENT = "EncryptedForRecipient"
    SENT = "Sent"
    ENCRYPTED_FOR_SENDER = "EncryptedForSender"
    ARCHIVED = "Archived"
    ARCHIVE_FAILED = "ArchiveFailed"
    FAILED = "Failed"


FORWARD = (
    Stage.INIT,
    Stage.KEYS_LOADED,
    Stage.COMPOSED,
    Stage.SIGNED,
    Stage.ENCRYPTED_FOR_RECIPIENT,
    Stage.SENT,
    Stage.ENCRYPTED_FOR_SENDER,
    Stage.ARCHIVED,
)
TERMINAL = frozenset({Stage.ARCHIVED, Stage.ARCHIVE_FAILED, Stage.FAILED})


@dataclass
class PipelineResult:
    state: Stage = Stage.INIT
    completed: List[Stage] = field(default_factory=lambda: [Stage.INIT])
    delivered: bool = False
    archived: bool = False
    error: Optional[MissiveError] = None
    message_id: Optional[str] = None

    def advance(self, stage: Stage) -> None:
        if self.state in TERMINAL:
            raise RuntimeError(f"pipeline already finished in {self.state.value}")
        if stage not in TERMINAL and FORWARD.index(stage) != FORWARD.index(self.state) + 1:
            raise RuntimeError(f"illegal transition {self.state.value} -> {stage.value}")
        self.state = stage
        self.completed.append(stage)
        if stage is Stage.SENT:
            self.delivered = True
        elif stage is Stage.ARCHIVED:
            self.archived = True

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL

    @property
    def failed_at(self) -> Optional[Stage]:
        """Last stage reached before a terminal failure."""
        if self.state not in (Stage.FAILED, Stage.ARCHIVE_FAILED):
            return None
        return self.completed[-2]

    def raise_for_delivery(self) -> None:
        if not self.delivered and self.error is not None:
            raise self.error
