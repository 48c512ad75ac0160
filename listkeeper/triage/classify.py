from __future__ import annotations

from dataclasses import dataclass
from datetime import timezone
from email.utils import parsedate_to_datetime

__all__ = [
    "Verdict",
    "unsubscribe_pair",
    "bounce_identifier",
    "classify",
    "message_timestamp",
    "sentinel_timestamp",
]


@dataclass(frozen=True)
class Verdict:
    unsubscribe: tuple[str, str] | None = None
    bounce_id: str | None = None

    @property
    def actionable(self) -> bool:
        return self.unsubscribe is not None or self.bounce_id is not None


def unsubscribe_pair(subject: str | None) -> tuple[str, str] | None:
    """
    Our List-Unsubscribe mailto sets the subject to `<user id>/<channel id>`.
    """
    if not subject:
        return None
    parts = subject.strip().split("/")
    if len(parts) != 2:
        return None
    user_id, channel_id = (p.strip() for p in parts)
    if not user_id or not channel_id:
        return None
    return user_id, channel_id


def bounce_identifier(headers: dict[str, str]) -> str | None:
    """
    Bounces come back with a null Return-Path to the envelope sender
    `list+<queue id>@domain`; the queue id sits between '+' and '@'.
    """
    if headers.get("Return-Path", "").strip() != "<>":
        return None
    to = headers.get("To", "")
    plus = to.find("+")
    if plus < 0:
        return None
    at = to.find("@", plus + 1)
    if at < 0:
        return None
    ident = to[plus + 1 : at]
    return ident or None


def classify(headers: dict[str, str]) -> Verdict:
    # both rules are evaluated; one message may carry both
    return Verdict(
        unsubscribe=unsubscribe_pair(headers.get("Subject")),
        bounce_id=bounce_identifier(headers),
    )


def message_timestamp(headers: dict[str, str]) -> float | None:
    date_hdr = headers.get("Date")
    if not date_hdr:
        return None
    try:
        dt = parsedate_to_datetime(date_hdr)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def sentinel_timestamp(body: str | None) -> float | None:
    """Sentinel bodies start with the UNIX time they were sent."""
    if not body:
        return None
    head = body.lstrip().split(None, 1)
    if not head:
        return None
    digits = ""
    for ch in head[0]:
        if not ch.isdigit():
            break
        digits += ch
    if not digits:
        return None
    return float(int(digits))
