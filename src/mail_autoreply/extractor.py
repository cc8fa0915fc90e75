"""Find the real correspondent behind a relayed form notification.

Form plugins send their notifications from the site's own account, so the
visible sender is the operator.  The customer is recovered from the
Reply-To header, or failing that from the "Email" / "Full Name" rows of the
HTML table the plugin renders into the body.
"""

from __future__ import annotations

import html
import re

from .constants import DEFAULT_GREETING_NAME
from .models import InboundMessage, ReplyTarget

# <th> (optionally wrapped in <strong>/<b>/<em>) holding the label, then the
# first following <td> that holds the value.
_LABEL_CELL = (
    r"<th(?:\s[^>]*)?>\s*(?:<(?:strong|b|em)(?:\s[^>]*)?>\s*)?{label}\s*"
    r"(?:</(?:strong|b|em)>\s*)?</th>"
)
_EMAIL_ROW_RE = re.compile(
    _LABEL_CELL.format(label="Email") + r"[\s\S]*?<td(?:\s[^>]*)?>\s*([^\s<]+@[^\s<]+)\s*</td>",
    re.IGNORECASE,
)
_NAME_ROW_RE = re.compile(
    _LABEL_CELL.format(label=r"Full\s+Name") + r"[\s\S]*?<td(?:\s[^>]*)?>\s*([^<]+?)\s*</td>",
    re.IGNORECASE,
)


def find_body_email(body: str) -> str:
    """Return the address from the "Email" row of a notification table."""
    if not body:
        return ""
    match = _EMAIL_ROW_RE.search(body)
    return match.group(1).strip() if match else ""


def find_body_name(body: str) -> str:
    """Return the text of the "Full Name" row, entity-decoded, whitespace collapsed."""
    if not body:
        return ""
    match = _NAME_ROW_RE.search(body)
    if not match:
        return ""
    # names wrapped across lines in the HTML source
    return " ".join(html.unescape(match.group(1)).split())


def extract_reply_target(
    message: InboundMessage,
    operator_email: str,
    greeting_name: str = DEFAULT_GREETING_NAME,
) -> ReplyTarget | None:
    """Resolve who a relayed notification should be answered to.

    A Reply-To pointing anywhere but the operator wins over the body.
    Returns None when no address can be found.
    """
    reply_to = message.reply_to_email.strip()
    if reply_to and reply_to.lower() != operator_email.strip().lower():
        return ReplyTarget(
            email=reply_to,
            display_name=message.reply_to_name.strip() or greeting_name,
            source="reply-to",
        )

    email = find_body_email(message.body)
    if not email:
        return None

    return ReplyTarget(
        email=email,
        display_name=find_body_name(message.body) or greeting_name,
        source="body",
    )
