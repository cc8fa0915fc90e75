"""Environment-sourced configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

import pytz
from dotenv import load_dotenv

from .constants import (
    AUTOMATED_SENDER_MARKERS,
    COMPANY_NAME,
    DEFAULT_DEBUG_INTERVAL,
    DEFAULT_GREETING_NAME,
    DEFAULT_HOUR_END,
    DEFAULT_HOUR_START,
    DEFAULT_IMAP_PORT,
    DEFAULT_PROD_INTERVAL,
    DEFAULT_SMTP_PORT,
    DEFAULT_TIMEZONE,
    IGNORE_DOMAINS,
    LOG_FILE_PATH,
    MAILBOX_FOLDER,
)


class ConfigError(ValueError):
    """Raised when the environment holds an unusable setting."""


@dataclass(frozen=True)
class Settings:
    email_user: str = ""
    email_pass: str = ""
    smtp_host: str = ""
    smtp_port: int = DEFAULT_SMTP_PORT
    imap_host: str = ""
    imap_port: int = DEFAULT_IMAP_PORT
    hour_start: int = DEFAULT_HOUR_START
    hour_end: int = DEFAULT_HOUR_END
    debug_interval: int = DEFAULT_DEBUG_INTERVAL
    prod_interval: int = DEFAULT_PROD_INTERVAL
    debug_mode: bool = False
    timezone_name: str = DEFAULT_TIMEZONE
    log_file: Path = LOG_FILE_PATH
    mailbox_folder: str = MAILBOX_FOLDER
    company_name: str = COMPANY_NAME
    greeting_name: str = DEFAULT_GREETING_NAME
    auto_mailer_markers: tuple[str, ...] = field(default_factory=lambda: tuple(AUTOMATED_SENDER_MARKERS))
    ignore_domains: tuple[str, ...] = field(default_factory=lambda: tuple(IGNORE_DOMAINS))

    @property
    def check_interval(self) -> int:
        """Polling interval in seconds for the current mode."""
        return self.debug_interval if self.debug_mode else self.prod_interval

    @property
    def tz(self):
        return pytz.timezone(self.timezone_name)

    def missing_required(self) -> list[str]:
        """Names of the variables needed to talk to the mail servers that are unset."""
        required = {
            "EMAIL_USER": self.email_user,
            "EMAIL_PASS": self.email_pass,
            "IMAP_HOST": self.imap_host,
            "SMTP_HOST": self.smtp_host,
        }
        return [name for name, value in required.items() if not value]


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    try:
        return int(environ.get(key, "").strip())
    except ValueError:
        return default


def _env_list(environ: Mapping[str, str], key: str, default: list[str]) -> tuple[str, ...]:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return tuple(default)
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


def load_settings(env_file: str | Path | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from the environment, after loading a .env file.

    Values already present in the environment take precedence over the file.
    Unparsable integers fall back to their defaults; out-of-range values and
    unknown timezones raise ConfigError.
    """
    if environ is None:
        load_dotenv(dotenv_path=env_file, override=False)
        environ = os.environ

    settings = Settings(
        email_user=environ.get("EMAIL_USER", "").strip(),
        email_pass=environ.get("EMAIL_PASS", ""),
        smtp_host=environ.get("SMTP_HOST", "").strip(),
        smtp_port=_env_int(environ, "SMTP_PORT", DEFAULT_SMTP_PORT),
        imap_host=environ.get("IMAP_HOST", "").strip(),
        imap_port=_env_int(environ, "IMAP_PORT", DEFAULT_IMAP_PORT),
        hour_start=_env_int(environ, "HOUR_START", DEFAULT_HOUR_START),
        hour_end=_env_int(environ, "HOUR_END", DEFAULT_HOUR_END),
        debug_interval=_env_int(environ, "DEBUG_TIME_CHECK", DEFAULT_DEBUG_INTERVAL),
        prod_interval=_env_int(environ, "PROD_TIME_CHECK", DEFAULT_PROD_INTERVAL),
        debug_mode=environ.get("DEBUG_MODE", "").strip().lower() == "true",
        timezone_name=environ.get("TIMEZONE", "").strip() or DEFAULT_TIMEZONE,
        log_file=Path(environ.get("LOG_FILE", "").strip() or LOG_FILE_PATH),
        mailbox_folder=environ.get("MAILBOX_FOLDER", "").strip() or MAILBOX_FOLDER,
        company_name=environ.get("COMPANY_NAME", "").strip() or COMPANY_NAME,
        greeting_name=environ.get("GREETING_NAME", "").strip() or DEFAULT_GREETING_NAME,
        auto_mailer_markers=_env_list(environ, "AUTO_MAILER_MARKERS", AUTOMATED_SENDER_MARKERS),
        ignore_domains=_env_list(environ, "IGNORE_DOMAINS", IGNORE_DOMAINS),
    )
    validate_settings(settings)
    return settings


def validate_settings(settings: Settings) -> None:
    for name, hour in (("HOUR_START", settings.hour_start), ("HOUR_END", settings.hour_end)):
        if not 0 <= hour <= 24:
            raise ConfigError(f"{name} must be between 0 and 24, got {hour}")
    for name, seconds in (
        ("DEBUG_TIME_CHECK", settings.debug_interval),
        ("PROD_TIME_CHECK", settings.prod_interval),
    ):
        if seconds <= 0:
            raise ConfigError(f"{name} must be a positive number of seconds, got {seconds}")
    try:
        pytz.timezone(settings.timezone_name)
    except pytz.UnknownTimeZoneError as exc:
        raise ConfigError(f"Unknown timezone: {settings.timezone_name}") from exc
