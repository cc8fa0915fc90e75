"""One polling cycle: fetch candidates, decide, reply, update flags."""

from __future__ import annotations

import queue
import threading
from typing import Callable, Iterable

from .classifier import classify_message
from .constants import (
    AUTOMATED_SENDER_MARKERS,
    DEFAULT_GREETING_NAME,
    FETCH_QUEUE_SIZE,
    IGNORE_DOMAINS,
)
from .display import ActivityLog
from .extractor import extract_reply_target
from .mailbox import ImapMailbox, MailboxError, MessageParseError, parse_message
from .models import CycleReport, Ignore, MessageOutcome, ReplyDirect, ReplyTarget
from .sender import InvalidRecipientError, ReplySendError, SmtpReplySender
from .settings import Settings

_END_OF_FETCH = object()
_PUT_POLL_SECONDS = 0.1


class CycleProcessor:
    """Runs polling cycles against one mailbox.

    ``mailbox_factory`` returns a fresh, unopened mailbox session (an
    ``ImapMailbox`` or anything with the same methods); a new session is
    opened and closed for every cycle. ``sender`` needs a
    ``send(target, original_message_id)`` method raising ``ReplySendError``,
    or ``InvalidRecipientError`` for a target no message can be addressed to.
    """

    def __init__(
        self,
        mailbox_factory: Callable[[], ImapMailbox],
        sender: SmtpReplySender,
        log: ActivityLog,
        operator_email: str,
        markers: Iterable[str] = AUTOMATED_SENDER_MARKERS,
        ignore_domains: Iterable[str] = IGNORE_DOMAINS,
        greeting_name: str = DEFAULT_GREETING_NAME,
        verbose: bool = False,
        queue_size: int = FETCH_QUEUE_SIZE,
    ) -> None:
        self.mailbox_factory = mailbox_factory
        self.sender = sender
        self.log = log
        self.operator_email = operator_email.strip().lower()
        self.markers = tuple(markers)
        self.ignore_domains = tuple(ignore_domains)
        self.greeting_name = greeting_name
        self.verbose = verbose
        self.queue_size = queue_size

    @classmethod
    def from_settings(cls, settings: Settings, log: ActivityLog) -> CycleProcessor:
        def mailbox_factory() -> ImapMailbox:
            return ImapMailbox(
                host=settings.imap_host,
                port=settings.imap_port,
                user=settings.email_user,
                password=settings.email_pass,
                folder=settings.mailbox_folder,
            )

        sender = SmtpReplySender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.email_user,
            password=settings.email_pass,
            company_name=settings.company_name,
        )
        return cls(
            mailbox_factory,
            sender,
            log,
            operator_email=settings.email_user,
            markers=settings.auto_mailer_markers,
            ignore_domains=settings.ignore_domains,
            greeting_name=settings.greeting_name,
            verbose=settings.debug_mode,
        )

    # --- cycle ---

    def run(self) -> CycleReport:
        """Process every unseen and unanswered message once.

        A connect/login/select/search failure aborts the cycle before any
        message is touched; the next cycle starts from scratch.
        """
        report = CycleReport()
        if self.verbose:
            self.log.write("[DEBUG] Checking email")

        try:
            with self.mailbox_factory() as mailbox:
                uids = mailbox.search_candidates()
                report.found = len(uids)
                if not uids:
                    if self.verbose:
                        self.log.write("[*] No new emails to process")
                    return report

                self.log.write(f"[v] Found {len(uids)} new email(s) to process")
                self._process_all(mailbox, uids, report)
        except MailboxError as exc:
            self.log.write(f"[x] {exc}")
            report.aborted = str(exc)
            return report

        self.log.write("--- Auto-reply cycle completed ---")
        return report

    def _process_all(self, mailbox: ImapMailbox, uids: list[str], report: CycleReport) -> None:
        """Fetch on a producer thread, process here, strictly in fetch order."""
        fetched: queue.Queue = queue.Queue(maxsize=self.queue_size)
        fetch_errors: list[MailboxError] = []
        stop = threading.Event()

        def put(item: object) -> bool:
            while not stop.is_set():
                try:
                    fetched.put(item, timeout=_PUT_POLL_SECONDS)
                    return True
                except queue.Full:
                    continue
            return False

        def produce() -> None:
            try:
                for uid in uids:
                    if stop.is_set() or not put((uid, mailbox.fetch_raw(uid))):
                        return
            except MailboxError as exc:
                fetch_errors.append(exc)
            finally:
                put(_END_OF_FETCH)

        producer = threading.Thread(target=produce, name="mailbox-fetch", daemon=True)
        producer.start()

        try:
            while True:
                item = fetched.get()
                if item is _END_OF_FETCH:
                    break
                uid, raw = item
                report.record(self.process_message(mailbox, uid, raw, report))
        finally:
            # the producer must be gone before the session is closed
            stop.set()
            while True:
                try:
                    fetched.get_nowait()
                except queue.Empty:
                    break
            producer.join()
        for exc in fetch_errors:
            self.log.write(f"[x] Fetch Error: {exc}")

    # --- per message ---

    def process_message(
        self,
        mailbox: ImapMailbox,
        uid: str,
        raw: bytes | None,
        report: CycleReport,
    ) -> MessageOutcome:
        self.log.write(f"Email UID: {uid}")

        if raw is None:
            self.log.write("  [!] ERROR: Could not get email body")
            return MessageOutcome.SKIPPED

        try:
            message = parse_message(uid, raw)
        except MessageParseError as exc:
            self.log.write(f"  [!] ERROR: Could not parse email: {exc}")
            self._mark_seen(mailbox, uid, report)
            return MessageOutcome.PARSE_FAILED

        if message.body_error:
            self.log.write(f"  [!] ERROR: Could not read part of the email body: {message.body_error}")

        decision = classify_message(
            message,
            self.operator_email,
            markers=self.markers,
            ignore_domains=self.ignore_domains,
            greeting_name=self.greeting_name,
        )

        if isinstance(decision, Ignore):
            self.log.write(f"  [!] IGNORED: {decision.reason} ({message.sender_email})")
            self._mark_seen(mailbox, uid, report)
            return MessageOutcome.IGNORED

        if isinstance(decision, ReplyDirect):
            target: ReplyTarget | None = decision.target
        else:
            target = extract_reply_target(message, self.operator_email, self.greeting_name)
            if target is None:
                self.log.write("  [!] IGNORED: Cannot extract customer email from form notification")
                self._mark_seen(mailbox, uid, report)
                return MessageOutcome.UNRESOLVED
            self.log.write(
                f"  [!] Form notification ({target.source}) - replying to: "
                f"{target.display_name} <{target.email}>"
            )

        try:
            self.sender.send(target, message.message_id)
        except InvalidRecipientError as exc:
            self.log.write(f"  [!] IGNORED: Cannot address a reply to {target.email!r}: {exc}")
            self._mark_seen(mailbox, uid, report)
            return MessageOutcome.UNRESOLVED
        except ReplySendError as exc:
            self.log.write(f"  [!] ERROR sending auto-reply: {exc}")
            return MessageOutcome.SEND_FAILED

        self.log.write(f"  [v] Auto-reply sent successfully to: {target.email}")

        try:
            mailbox.mark_answered(uid)
        except MailboxError as exc:
            self.log.write(f"  [x] Could not mark UID {uid} as Seen and Answered: {exc}")
            report.flag_failures += 1
        else:
            self.log.write("  [v] Email marked as Seen and Answered")
        return MessageOutcome.REPLIED

    def _mark_seen(self, mailbox: ImapMailbox, uid: str, report: CycleReport) -> None:
        try:
            mailbox.mark_seen(uid)
        except MailboxError as exc:
            self.log.write(f"  [x] Could not mark UID {uid} as Seen: {exc}")
            report.flag_failures += 1
