"""IMAP access to the monitored mailbox, and parsing of fetched messages."""

from __future__ import annotations

import email.errors
import email.header
import imaplib
import threading
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parseaddr
from typing import Callable, Iterable

from .constants import DEFAULT_IMAP_PORT, MAILBOX_FOLDER
from .models import InboundMessage

SEEN_FLAG = r"\Seen"
ANSWERED_FLAG = r"\Answered"


class MailboxError(Exception):
    """A connect/login/select/search/fetch/store command failed."""

    def __init__(self, stage: str, detail: str) -> None:
        super().__init__(f"IMAP {stage} error: {detail}")
        self.stage = stage
        self.detail = detail


class MessageParseError(ValueError):
    """A fetched message cannot be turned into an InboundMessage."""


_HEADER_PARSE_ERRORS = (IndexError, TypeError, ValueError, AttributeError, email.errors.MessageError)


def decode_header_value(value: str | None) -> str:
    if not value:
        return ""
    decoded_fragments = []
    for fragment, encoding in email.header.decode_header(str(value)):
        if isinstance(fragment, bytes):
            try:
                decoded_fragments.append(fragment.decode(encoding or "utf-8", errors="replace"))
            except LookupError:
                decoded_fragments.append(fragment.decode("utf-8", errors="replace"))
        else:
            decoded_fragments.append(fragment)
    return "".join(decoded_fragments).strip()


def split_address(header_value: str) -> tuple[str, str]:
    """Return (display name, lowercased address) for an address header."""
    name, address = parseaddr(header_value)
    return name.strip(), address.strip().lower()


def decode_imap_response(data: object) -> str:
    if not isinstance(data, list):
        return ""
    parts: list[str] = []
    for item in data:
        if item is None:
            continue
        if isinstance(item, bytes):
            parts.append(item.decode("utf-8", errors="replace"))
        else:
            parts.append(str(item))
    return " | ".join(parts).strip()


def parse_uid_search_data(data: object) -> list[str]:
    if not isinstance(data, list) or not data or not data[0]:
        return []
    raw = data[0]
    if isinstance(raw, bytes):
        return [uid.decode("ascii", errors="ignore") for uid in raw.split()]
    if isinstance(raw, str):
        return [uid for uid in raw.split() if uid]
    return []


def parse_fetch_message(fetch_data: Iterable[object]) -> bytes | None:
    """Return the message literal out of a UID FETCH response."""
    for part in fetch_data:
        if not isinstance(part, tuple) or len(part) < 2:
            continue
        _meta, body = part
        if isinstance(body, bytes):
            return body
    return None


def _collect_body_text(message: EmailMessage) -> tuple[str, str]:
    """Concatenate the inline text parts; report parts that failed to decode."""
    texts: list[str] = []
    errors: list[str] = []
    for part in message.walk():
        if part.is_multipart() or part.get_content_maintype() != "text":
            continue
        if part.is_attachment():
            continue
        try:
            texts.append(part.get_content())
        except (LookupError, UnicodeError, ValueError) as exc:
            errors.append(f"{part.get_content_type()}: {exc}")
    return "".join(texts), "; ".join(errors)


def parse_message(uid: str, raw: bytes) -> InboundMessage:
    """Build an InboundMessage from the raw RFC 822 bytes of a fetched message."""
    # policy.default parses headers lazily, so malformed headers surface on access
    try:
        message = BytesParser(policy=policy.default).parsebytes(raw)
        sender_name, sender_email = split_address(decode_header_value(message.get("From")))
        reply_to_name, reply_to_email = split_address(decode_header_value(message.get("Reply-To")))
        subject = decode_header_value(message.get("Subject"))
        message_id = decode_header_value(message.get("Message-ID"))
        body, body_error = _collect_body_text(message)
    except _HEADER_PARSE_ERRORS as exc:
        raise MessageParseError(f"UID {uid}: {type(exc).__name__}: {exc}") from exc

    if "@" not in sender_email:
        raise MessageParseError(f"UID {uid}: no usable From address")

    return InboundMessage(
        uid=uid,
        sender_email=sender_email,
        sender_name=sender_name,
        subject=subject,
        message_id=message_id,
        body=body,
        reply_to_email=reply_to_email if "@" in reply_to_email else "",
        reply_to_name=reply_to_name,
        body_error=body_error,
    )


class ImapMailbox:
    """One authenticated IMAP session on the monitored folder.

    Used as a context manager: entering connects, logs in and selects the
    folder; leaving logs out. Commands are serialized so a fetch thread and
    the processing thread can share the session.
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        port: int = DEFAULT_IMAP_PORT,
        folder: str = MAILBOX_FOLDER,
        imap_factory: Callable[[str, int], imaplib.IMAP4] = imaplib.IMAP4_SSL,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.folder = folder
        self._imap_factory = imap_factory
        self._conn: imaplib.IMAP4 | None = None
        self._lock = threading.Lock()

    # --- session ---

    def open(self) -> None:
        try:
            self._conn = self._imap_factory(self.host, self.port)
        except (OSError, imaplib.IMAP4.error) as exc:
            raise MailboxError("connection", str(exc)) from exc

        try:
            self._conn.login(self.user, self.password)
        except imaplib.IMAP4.error as exc:
            self.close()
            raise MailboxError("login", str(exc)) from exc

        status, data = self._command(lambda conn: conn.select(self.folder, readonly=False), "select")
        if status != "OK":
            self.close()
            raise MailboxError("select", decode_imap_response(data) or f"cannot open {self.folder}")

    def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.logout()
        except (OSError, imaplib.IMAP4.error):
            # the server may already have dropped the session
            return

    def __enter__(self) -> ImapMailbox:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()

    def _command(self, call: Callable[[imaplib.IMAP4], tuple], stage: str) -> tuple:
        if self._conn is None:
            raise MailboxError(stage, "not connected")
        with self._lock:
            try:
                return call(self._conn)
            except (OSError, imaplib.IMAP4.error) as exc:
                raise MailboxError(stage, str(exc)) from exc

    # --- public API ---

    def search_candidates(self) -> list[str]:
        """UIDs of messages that are neither seen nor answered, in server order."""
        status, data = self._command(lambda conn: conn.uid("SEARCH", None, "UNSEEN", "UNANSWERED"), "search")
        if status != "OK":
            raise MailboxError("search", decode_imap_response(data) or "UID SEARCH failed")
        return parse_uid_search_data(data)

    def fetch_raw(self, uid: str) -> bytes | None:
        """Fetch the full message without setting \\Seen."""
        status, data = self._command(lambda conn: conn.uid("FETCH", uid, "(BODY.PEEK[])"), "fetch")
        if status != "OK":
            raise MailboxError("fetch", decode_imap_response(data) or f"UID FETCH {uid} failed")
        if not data:
            return None
        return parse_fetch_message(data)

    def _add_flags(self, uid: str, flags: list[str]) -> None:
        flag_list = "(" + " ".join(flags) + ")"
        status, data = self._command(lambda conn: conn.uid("STORE", uid, "+FLAGS", flag_list), "store")
        if status != "OK":
            raise MailboxError("store", decode_imap_response(data) or f"UID STORE {uid} failed")

    def mark_seen(self, uid: str) -> None:
        self._add_flags(uid, [SEEN_FLAG])

    def mark_answered(self, uid: str) -> None:
        """Mark a message both seen and answered."""
        self._add_flags(uid, [SEEN_FLAG, ANSWERED_FLAG])
