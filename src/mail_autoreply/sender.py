"""Compose and send the acknowledgement over SMTP."""

from __future__ import annotations

import email.errors
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .constants import (
    COMPANY_NAME,
    DEFAULT_SMTP_PORT,
    REPLY_BODY_TEMPLATE,
    REPLY_SUBJECT,
    SEND_ATTEMPTS,
    SMTP_IMPLICIT_TLS_PORT,
    SMTP_TIMEOUT_SECONDS,
)
from .models import ReplyTarget

# Failures worth another attempt; anything else (auth, refused recipient) is final.
_TRANSIENT_SMTP_ERRORS = (
    smtplib.SMTPServerDisconnected,
    smtplib.SMTPConnectError,
    ConnectionError,
    TimeoutError,
)


class ReplySendError(Exception):
    """The acknowledgement could not be handed to the SMTP server."""


class InvalidRecipientError(ReplySendError):
    """The target cannot be written into a message header; retrying will not help."""


def render_reply_body(display_name: str, company_name: str = COMPANY_NAME) -> str:
    return REPLY_BODY_TEMPLATE.format(name=display_name, company=company_name)


def compose_reply(
    target: ReplyTarget,
    original_message_id: str,
    from_email: str,
    company_name: str = COMPANY_NAME,
) -> EmailMessage:
    """Build the plaintext acknowledgement, threaded onto the original message."""
    msg = EmailMessage()
    msg["From"] = formataddr((company_name, from_email))
    msg["To"] = formataddr((target.display_name, target.email))
    msg["Subject"] = REPLY_SUBJECT
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain=from_email.rpartition("@")[2] or None)
    # RFC 3834: lets other responders recognise this as an automatic reply
    msg["Auto-Submitted"] = "auto-replied"

    if original_message_id:
        msg["In-Reply-To"] = original_message_id
        msg["References"] = original_message_id

    msg.set_content(render_reply_body(target.display_name, company_name))
    return msg


class SmtpReplySender:
    """Sends acknowledgements from the operator's account."""

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        port: int = DEFAULT_SMTP_PORT,
        company_name: str = COMPANY_NAME,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.company_name = company_name

    def _open_connection(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.port == SMTP_IMPLICIT_TLS_PORT:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS, context=context)
        server = smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS)
        try:
            server.starttls(context=context)
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server

    @retry(
        retry=retry_if_exception_type(_TRANSIENT_SMTP_ERRORS),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(SEND_ATTEMPTS),
        reraise=True,
    )
    def _deliver(self, msg: EmailMessage) -> None:
        with self._open_connection() as server:
            server.login(self.user, self.password)
            server.send_message(msg)

    def send(self, target: ReplyTarget, original_message_id: str = "") -> None:
        """Send one acknowledgement; raises ReplySendError on failure."""
        try:
            msg = compose_reply(target, original_message_id, self.user, self.company_name)
        except (ValueError, IndexError, email.errors.MessageError) as exc:
            # non-ASCII addresses, line breaks in display names, unparsable message-ids
            raise InvalidRecipientError(f"{type(exc).__name__}: {exc}") from exc
        try:
            self._deliver(msg)
        except (smtplib.SMTPException, OSError, ValueError) as exc:
            raise ReplySendError(f"{type(exc).__name__}: {exc}") from exc
