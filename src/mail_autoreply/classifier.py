"""Decide whether an inbound message gets an acknowledgement, and how."""

from __future__ import annotations

from typing import Iterable

from .constants import (
    AUTO_SUBJECT_MARKER,
    AUTOMATED_SENDER_MARKERS,
    DEFAULT_GREETING_NAME,
    IGNORE_DOMAINS,
    REPLY_PREFIX,
)
from .models import Classification, Ignore, InboundMessage, ReplyDirect, ReplyTarget, ReplyViaExtraction

REASON_OWN_REPLY = "own auto-reply"
REASON_AUTO_MAILER = "auto-mailer"
REASON_BLOCKED_DOMAIN = "blocked domain"


def is_from_operator(message: InboundMessage, operator_email: str) -> bool:
    return message.sender_email.lower() == operator_email.strip().lower()


def is_auto_mailer(
    sender_email: str,
    subject: str,
    markers: Iterable[str] = AUTOMATED_SENDER_MARKERS,
) -> bool:
    """Return True for bounce/no-reply senders and auto-generated subjects."""
    sender = sender_email.lower()
    if any(marker.lower() in sender for marker in markers):
        return True
    return AUTO_SUBJECT_MARKER in subject.lower()


def matching_ignore_domain(sender_email: str, ignore_domains: Iterable[str] = IGNORE_DOMAINS) -> str:
    """Return the ignore-list entry the sender falls under, or an empty string."""
    sender = sender_email.lower()
    for domain in ignore_domains:
        if domain and sender.endswith(domain.lower()):
            return domain
    return ""


def classify_message(
    message: InboundMessage,
    operator_email: str,
    markers: Iterable[str] = AUTOMATED_SENDER_MARKERS,
    ignore_domains: Iterable[str] = IGNORE_DOMAINS,
    greeting_name: str = DEFAULT_GREETING_NAME,
) -> Classification:
    """Classify a message. The first matching rule wins.

    1. Our own acknowledgement coming back ("Re:" from the operator) is ignored.
    2. Automated senders and auto-generated subjects are ignored.
    3. Senders in an ignored domain are ignored.
    4. Anything else from the operator is a relayed form notification whose
       correspondent must be extracted; everyone else is answered directly.

    Rules 2 and 3 only apply to external senders.
    """
    from_self = is_from_operator(message, operator_email)

    if from_self:
        if message.subject.lower().startswith(REPLY_PREFIX):
            return Ignore(REASON_OWN_REPLY)
        return ReplyViaExtraction()

    if is_auto_mailer(message.sender_email, message.subject, markers):
        return Ignore(REASON_AUTO_MAILER)

    if matching_ignore_domain(message.sender_email, ignore_domains):
        return Ignore(REASON_BLOCKED_DOMAIN)

    return ReplyDirect(
        ReplyTarget(
            email=message.sender_email,
            display_name=message.sender_name.strip() or greeting_name,
            source="sender",
        )
    )
