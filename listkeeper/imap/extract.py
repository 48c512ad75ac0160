from __future__ import annotations

import logging
import re
from email.parser import HeaderParser
from typing import Iterable

from listkeeper.imap.errors import GrammarParseError
from listkeeper.imap.reader import Response

__all__ = [
    "uid_from_fetch_line",
    "uids_from_fetch",
    "parse_search_line",
    "search_uids",
    "parse_header_block",
]

logger = logging.getLogger(__name__)

_FETCH_UID_RE = re.compile(r"\(UID (\d+)")

# LINE <- '* SEARCH' (' ' UID)* '\r\n'?
# UID  <- (![ \r\n] .)+
_SEARCH_RE = re.compile(r"\* SEARCH((?: [^ \r\n]+)*)(?:\r\n)?")

_UID_MAX = 0xFFFFFFFF


def uid_from_fetch_line(line: str) -> int | None:
    """`* 3 FETCH (UID 12345 FLAGS (\\Seen))` -> 12345"""
    m = _FETCH_UID_RE.search(line)
    if not m:
        return None
    uid = int(m.group(1))
    if uid > _UID_MAX:
        return None
    return uid


def uids_from_fetch(lines: Iterable[str]) -> set[int]:
    out: set[int] = set()
    for line in lines:
        uid = uid_from_fetch_line(line)
        if uid is not None:
            out.add(uid)
    return out


def parse_search_line(line: str) -> list[str]:
    m = _SEARCH_RE.fullmatch(line)
    if not m:
        raise GrammarParseError(line)
    return m.group(1).split()


def search_uids(resp: Response) -> list[str]:
    """
    UIDs from a UID SEARCH response. A missing or malformed SEARCH line
    means no matching messages.
    """
    for line in resp.untagged:
        if not line.startswith("* SEARCH"):
            continue
        try:
            return parse_search_line(line)
        except GrammarParseError as e:
            logger.warning("%s; treating as no matches", e)
            return []
    return []


def parse_header_block(text: str) -> dict[str, str]:
    """
    Every header field in one RFC 5322 header block, keyed by the
    title-cased field name (`Return-path` and `RETURN-PATH` both become
    `Return-Path`). Folded values are unfolded; the first occurrence of a
    repeated field wins.
    """
    msg = HeaderParser().parsestr(text, headersonly=True)
    out: dict[str, str] = {}
    for name, value in msg.items():
        unfolded = " ".join(str(value).split())
        out.setdefault(name.strip().title(), unfolded)
    return out
