"""Tests for the mailbox module."""

import imaplib

import pytest

from helpers import FORM_BODY, OPERATOR, make_raw_email
from mail_autoreply import mailbox as mailbox_module
from mail_autoreply.mailbox import (
    ImapMailbox,
    MailboxError,
    MessageParseError,
    parse_message,
    parse_uid_search_data,
)


class FakeIMAP:
    """Records commands sent over an imaplib-like connection."""

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.commands: list[tuple] = []
        self.login_error: Exception | None = None
        self.select_status = "OK"
        self.search_result = [b"3 5 8"]
        self.messages: dict[str, bytes] = {}
        self.logged_out = False

    def login(self, user: str, password: str):
        if self.login_error is not None:
            raise self.login_error
        self.commands.append(("LOGIN", user))
        return "OK", [b"LOGIN completed"]

    def select(self, mailbox: str, readonly: bool = False):
        self.commands.append(("SELECT", mailbox, readonly))
        return self.select_status, [b"4"]

    def uid(self, command: str, *args):
        self.commands.append((command, *args))
        if command == "SEARCH":
            return "OK", self.search_result
        if command == "FETCH":
            uid = args[0]
            if uid not in self.messages:
                return "OK", [None]
            return "OK", [(f"{uid} (UID {uid} BODY[] {{99}}".encode(), self.messages[uid]), b")"]
        if command == "STORE":
            return "OK", [b"done"]
        return "NO", [b"unsupported"]

    def logout(self):
        self.logged_out = True
        return "BYE", [b""]


def _mailbox(fake: FakeIMAP) -> ImapMailbox:
    return ImapMailbox("imap.example", "user@example", "secret", imap_factory=lambda host, port: fake)


def test_session_search_and_flags():
    fake = FakeIMAP("imap.example", 993)
    with _mailbox(fake) as mailbox:
        assert mailbox.search_candidates() == ["3", "5", "8"]
        mailbox.mark_seen("3")
        mailbox.mark_answered("5")

    assert ("SELECT", "INBOX", False) in fake.commands
    assert ("SEARCH", None, "UNSEEN", "UNANSWERED") in fake.commands
    assert ("STORE", "3", "+FLAGS", r"(\Seen)") in fake.commands
    assert ("STORE", "5", "+FLAGS", r"(\Seen \Answered)") in fake.commands
    assert fake.logged_out


def test_fetch_uses_peek():
    fake = FakeIMAP("imap.example", 993)
    fake.messages["3"] = b"raw message"
    with _mailbox(fake) as mailbox:
        assert mailbox.fetch_raw("3") == b"raw message"
        assert mailbox.fetch_raw("4") is None

    assert ("FETCH", "3", "(BODY.PEEK[])") in fake.commands


def test_login_failure_raises_mailbox_error():
    fake = FakeIMAP("imap.example", 993)
    fake.login_error = imaplib.IMAP4.error("AUTHENTICATIONFAILED")

    with pytest.raises(MailboxError) as excinfo:
        with _mailbox(fake):
            pass

    assert excinfo.value.stage == "login"
    assert fake.logged_out


def test_select_failure_raises_mailbox_error():
    fake = FakeIMAP("imap.example", 993)
    fake.select_status = "NO"

    with pytest.raises(MailboxError, match="select"):
        _mailbox(fake).open()


def test_connect_failure_raises_mailbox_error():
    def refuse(host, port):
        raise ConnectionRefusedError("connection refused")

    mailbox = ImapMailbox("imap.example", "u", "p", imap_factory=refuse)
    with pytest.raises(MailboxError, match="connection"):
        mailbox.open()


def test_commands_require_open_session():
    with pytest.raises(MailboxError):
        _mailbox(FakeIMAP("imap.example", 993)).search_candidates()


def test_parse_uid_search_data():
    assert parse_uid_search_data([b"1 2 3"]) == ["1", "2", "3"]
    assert parse_uid_search_data([b""]) == []
    assert parse_uid_search_data(None) == []


def test_parse_message_headers():
    raw = make_raw_email(
        sender='"Doe, Jane" <Jane.Doe@Example.COM>',
        subject="=?utf-8?q?Pertanyaan_harga?=",
        reply_to="Other <other@example.com>",
    )
    message = parse_message("12", raw)

    assert message.uid == "12"
    assert message.sender_email == "jane.doe@example.com"
    assert message.sender_name == "Doe, Jane"
    assert message.subject == "Pertanyaan harga"
    assert message.message_id == "<orig-1@external.com>"
    assert message.reply_to_email == "other@example.com"
    assert message.reply_to_name == "Other"
    assert message.body_error == ""


def test_parse_message_multipart_skips_attachments():
    raw = (
        f"From: Website <{OPERATOR}>\r\n"
        "Subject: New submission\r\n"
        "MIME-Version: 1.0\r\n"
        'Content-Type: multipart/mixed; boundary="XX"\r\n'
        "\r\n"
        "--XX\r\n"
        "Content-Type: text/html; charset=utf-8\r\n"
        "\r\n"
        f"{FORM_BODY}\r\n"
        "--XX\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        'Content-Disposition: attachment; filename="secret.txt"\r\n'
        "\r\n"
        "attached@example.com\r\n"
        "--XX--\r\n"
    ).encode("utf-8")

    message = parse_message("13", raw)

    assert "cust@example.com" in message.body
    assert "attached@example.com" not in message.body
    assert message.reply_to_email == ""


def test_parse_message_without_sender_raises():
    with pytest.raises(MessageParseError):
        parse_message("14", b"Subject: hi\r\n\r\nbody")


@pytest.mark.parametrize("header", ['From: "', "From: <", "From: undisclosed"])
def test_parse_message_malformed_from_raises_parse_error(header):
    raw = f"{header}\r\nSubject: hi\r\n\r\nbody".encode()
    with pytest.raises(MessageParseError):
        parse_message("15", raw)


def test_parse_message_header_errors_become_parse_errors(monkeypatch):
    """Header parser crashes are reported as MessageParseError, not raised raw."""

    def broken_decode(value):
        raise IndexError("list index out of range")

    monkeypatch.setattr(mailbox_module, "decode_header_value", broken_decode)

    with pytest.raises(MessageParseError, match="IndexError"):
        parse_message("16", make_raw_email())
