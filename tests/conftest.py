"""Shared fixtures for tests."""

from __future__ import annotations

from datetime import datetime
from io import StringIO

import pytest
from rich.console import Console

from helpers import FORM_BODY, JAKARTA, OPERATOR
from mail_autoreply.display import ActivityLog
from mail_autoreply.models import InboundMessage


@pytest.fixture
def operator() -> str:
    return OPERATOR


@pytest.fixture
def log(tmp_path) -> ActivityLog:
    """ActivityLog with a frozen clock, writing to a captured console."""
    return ActivityLog(
        tmp_path / "logs.txt",
        JAKARTA,
        clock=lambda: JAKARTA.localize(datetime(2026, 3, 2, 9, 15, 0)),
        out=Console(file=StringIO(), width=200),
    )


@pytest.fixture
def external_message() -> InboundMessage:
    return InboundMessage(
        uid="101",
        sender_email="customer@external.com",
        sender_name="Customer Person",
        subject="Question",
        message_id="<orig-1@external.com>",
        body="Hello",
    )


@pytest.fixture
def form_message() -> InboundMessage:
    return InboundMessage(
        uid="102",
        sender_email=OPERATOR,
        sender_name="GasPro Website",
        subject="New submission: Contact form",
        message_id="<form-1@gaspro.example>",
        body=FORM_BODY,
    )
