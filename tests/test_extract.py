from __future__ import annotations

import pytest

from listkeeper.imap.errors import GrammarParseError
from listkeeper.imap.extract import (
    parse_header_block,
    parse_search_line,
    search_uids,
    uid_from_fetch_line,
    uids_from_fetch,
)
from listkeeper.imap.reader import Response


def test_uid_from_fetch_fragment() -> None:
    assert uid_from_fetch_line("* 12 FETCH (UID 12345 FLAGS (\\Seen))\r\n") == 12345


def test_no_uid_without_marker() -> None:
    assert uid_from_fetch_line("* 12 FETCH (FLAGS (\\Seen))\r\n") is None
    assert uid_from_fetch_line("A3 OK Fetch completed.\r\n") is None


def test_uids_from_fetch_deduplicates() -> None:
    lines = [
        "* 1 FETCH (UID 5 FLAGS ())\r\n",
        "* 2 FETCH (UID 7 FLAGS (\\Seen))\r\n",
        "* 1 FETCH (UID 5 FLAGS (\\Seen))\r\n",
        "* 3 EXISTS\r\n",
    ]
    assert uids_from_fetch(lines) == {5, 7}


def test_search_line_with_results() -> None:
    assert parse_search_line("* SEARCH 171430 171431 171432\r\n") == [
        "171430",
        "171431",
        "171432",
    ]


def test_search_line_without_results() -> None:
    assert parse_search_line("* SEARCH\r\n") == []
    assert parse_search_line("* SEARCH") == []


@pytest.mark.parametrize(
    "line",
    ["* SEARCHx", "* SEARCH  1\r\n", "* SEARCH 1\n", "A1 OK\r\n", "* SEARCH 1\r\nextra"],
)
def test_malformed_search_lines_are_rejected(line: str) -> None:
    with pytest.raises(GrammarParseError):
        parse_search_line(line)


def test_search_uids_treats_malformed_as_empty() -> None:
    resp = Response("A5", ["* SEARCHx 1\r\n", "A5 OK\r\n"])
    assert search_uids(resp) == []


def test_search_uids_reads_search_line_among_others() -> None:
    resp = Response("A5", ["* 4 EXISTS\r\n", "* SEARCH 8 9\r\n", "A5 OK\r\n"])
    assert search_uids(resp) == ["8", "9"]


def test_header_block_keeps_every_field() -> None:
    block = (
        "Return-Path: <>\r\n"
        "Received: from a\r\n"
        "Received: from b\r\n"
        "To: bmailer+AbCd1234@hubertnet.nl\r\n"
        "Subject: a long\r\n"
        " folded subject\r\n"
        "X-Custom: yes\r\n"
        "\r\n"
    )

    headers = parse_header_block(block)

    assert headers["Return-Path"] == "<>"
    assert headers["To"] == "bmailer+AbCd1234@hubertnet.nl"
    assert headers["Subject"] == "a long folded subject"
    assert headers["Received"] == "from a"
    assert headers["X-Custom"] == "yes"


def test_header_names_are_case_insensitive() -> None:
    headers = parse_header_block("Return-path: <>\r\nTO: a@b\r\nsubject: u/c\r\nto: second\r\n\r\n")

    assert headers == {"Return-Path": "<>", "To": "a@b", "Subject": "u/c"}
