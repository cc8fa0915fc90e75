"""Constants for Mail Auto-Reply."""

from pathlib import Path

# --- Runtime files ---
LOG_FILE_PATH = Path("logs.txt")
DEFAULT_TIMEZONE = "Asia/Jakarta"

# --- Mail transport ---
DEFAULT_IMAP_PORT = 993
DEFAULT_SMTP_PORT = 465
SMTP_IMPLICIT_TLS_PORT = 465
MAILBOX_FOLDER = "INBOX"
FETCH_QUEUE_SIZE = 10  # raw messages buffered between fetch and processing
SMTP_TIMEOUT_SECONDS = 30
SEND_ATTEMPTS = 3

# --- Scheduling ---
DEFAULT_HOUR_START = 0
DEFAULT_HOUR_END = 24
DEFAULT_DEBUG_INTERVAL = 30  # seconds
DEFAULT_PROD_INTERVAL = 60  # seconds

# --- Classification ---
REPLY_PREFIX = "re:"
AUTO_SUBJECT_MARKER = "auto"
AUTOMATED_SENDER_MARKERS = [
    "no-reply",
    "noreply",
    "mailer-daemon",
]
IGNORE_DOMAINS = [
    "@stripe.com",
    "@amazon.com.au",
]

# --- Reply ---
DEFAULT_GREETING_NAME = "there"
COMPANY_NAME = "GasPro Detection"
REPLY_SUBJECT = "Re: We'll Reply Soon As Possible"
REPLY_BODY_TEMPLATE = """Dear {name},

Thank you for contacting {company}.

Your message has been received and is currently being reviewed by our team. One of our representatives will get back to you as soon as possible.

Kind regards,
{company} Team"""
