"""Fakes and message builders shared by the tests."""

from __future__ import annotations

import pytz

from mail_autoreply.mailbox import MailboxError
from mail_autoreply.sender import ReplySendError

OPERATOR = "info@gaspro.example"
JAKARTA = pytz.timezone("Asia/Jakarta")

FORM_BODY = """
<table class="ff_table">
  <tbody>
    <tr class="field-label"><th style="padding: 6px 12px;"><strong>Full Name</strong></th></tr>
    <tr class="field-value"><td style="padding: 6px 12px 12px 12px;">Jane Doe</td></tr>
    <tr class="field-label"><th style="padding: 6px 12px;"><strong>Email</strong></th></tr>
    <tr class="field-value"><td style="padding: 6px 12px 12px 12px;">cust@example.com</td></tr>
    <tr class="field-label"><th style="padding: 6px 12px;"><strong>Message</strong></th></tr>
    <tr class="field-value"><td style="padding: 6px 12px 12px 12px;">Do you service gas detectors?</td></tr>
  </tbody>
</table>
"""


def make_raw_email(
    *,
    sender: str = "Customer <customer@external.com>",
    subject: str = "Question",
    body: str = "Hello, I have a question.",
    reply_to: str | None = None,
    message_id: str = "<orig-1@external.com>",
    subtype: str = "plain",
) -> bytes:
    lines = [
        f"From: {sender}",
        f"To: {OPERATOR}",
        f"Subject: {subject}",
        f"Message-ID: {message_id}",
        "MIME-Version: 1.0",
        f"Content-Type: text/{subtype}; charset=utf-8",
    ]
    if reply_to is not None:
        lines.append(f"Reply-To: {reply_to}")
    return ("\r\n".join(lines) + "\r\n\r\n" + body).encode("utf-8")


class FakeMailbox:
    """In-memory stand-in for an ImapMailbox session."""

    def __init__(self, messages: dict[str, bytes | None] | None = None) -> None:
        self.messages = dict(messages or {})
        self.flags: dict[str, set[str]] = {uid: set() for uid in self.messages}
        self.stores: list[tuple[str, str]] = []
        self.fetched: list[str] = []
        self.opened = 0
        self.closed = 0
        self.fail_open: MailboxError | None = None
        self.fail_search: MailboxError | None = None
        self.fail_fetch_uid: str | None = None
        self.fail_store = False

    def __enter__(self) -> FakeMailbox:
        if self.fail_open is not None:
            raise self.fail_open
        self.opened += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.closed += 1

    def search_candidates(self) -> list[str]:
        if self.fail_search is not None:
            raise self.fail_search
        return [uid for uid in self.messages if not self.flags[uid] & {"seen", "answered"}]

    def fetch_raw(self, uid: str) -> bytes | None:
        if uid == self.fail_fetch_uid:
            raise MailboxError("fetch", "connection reset")
        self.fetched.append(uid)
        return self.messages[uid]

    def _store(self, uid: str, kind: str, flags: set[str]) -> None:
        if self.fail_store:
            raise MailboxError("store", "NO [CANNOT] read-only")
        self.stores.append((uid, kind))
        self.flags[uid] |= flags

    def mark_seen(self, uid: str) -> None:
        self._store(uid, "seen", {"seen"})

    def mark_answered(self, uid: str) -> None:
        self._store(uid, "answered", {"seen", "answered"})


class FakeSender:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str, str]] = []

    def send(self, target, original_message_id: str = "") -> None:  # noqa: ANN001
        if self.fail:
            raise ReplySendError("SMTPServerDisconnected: Connection unexpectedly closed")
        self.sent.append((target.email, target.display_name, original_message_id))


