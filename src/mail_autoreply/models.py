"""Data models for Mail Auto-Reply."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


@dataclass(frozen=True)
class InboundMessage:
    """Snapshot of one mailbox entry, taken when it is fetched."""

    uid: str
    sender_email: str  # lowercased address from the From header
    sender_name: str
    subject: str
    message_id: str = ""
    body: str = ""  # text of the inline parts, attachments excluded
    reply_to_email: str = ""
    reply_to_name: str = ""
    body_error: str = ""  # set when part of the body could not be decoded


@dataclass(frozen=True)
class ReplyTarget:
    """Resolved recipient of an acknowledgement."""

    email: str
    display_name: str
    source: str = "sender"  # "sender", "reply-to" or "body"


@dataclass(frozen=True)
class Ignore:
    reason: str


@dataclass(frozen=True)
class ReplyDirect:
    target: ReplyTarget


@dataclass(frozen=True)
class ReplyViaExtraction:
    """Relayed notification from the operator's own account."""


Classification = Union[Ignore, ReplyDirect, ReplyViaExtraction]


class MessageOutcome(str, Enum):
    """Terminal state of a single message within a cycle."""

    REPLIED = "replied"
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"
    PARSE_FAILED = "parse_failed"
    SEND_FAILED = "send_failed"
    SKIPPED = "skipped"


class ServiceMode(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass
class CycleReport:
    """Counters collected while running one polling cycle."""

    found: int = 0
    replied: int = 0
    ignored: int = 0
    unresolved: int = 0
    parse_failed: int = 0
    send_failed: int = 0
    skipped: int = 0
    flag_failures: int = 0
    aborted: str = ""  # cycle-level error, empty when the cycle ran

    def record(self, outcome: MessageOutcome) -> None:
        field_name = outcome.value
        setattr(self, field_name, getattr(self, field_name) + 1)
