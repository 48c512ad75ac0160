from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, ContextManager, Iterable

from listkeeper.imap.errors import CommandError
from listkeeper.imap.extract import parse_header_block, search_uids, uids_from_fetch
from listkeeper.imap.reader import Response
from listkeeper.imap.session import ImapSession, ImapTarget, open_session, quote
from listkeeper.triage.classify import classify, message_timestamp, sentinel_timestamp

logger = logging.getLogger(__name__)

DISPOSE_ARCHIVE = "archive"
DISPOSE_DELETE = "delete"

SessionOpener = Callable[[ImapTarget], ContextManager[ImapSession]]


@dataclass(frozen=True)
class TriagePolicy:
    active: bool = False  # observe only unless set
    dispose: str = DISPOSE_ARCHIVE
    sentinel_subject: str | None = None
    max_age_seconds: int = 0  # 0 disables the freshness check


class TriageHandler:
    """
    Business side of triage. Each method returns True when the message is
    considered handled.
    """

    def unsubscribe(self, user_id: str, channel_id: str) -> bool:
        raise NotImplementedError

    def bounce(self, delivery_id: str) -> bool:
        raise NotImplementedError


def _expect_ok(resp: Response, command: str) -> Response:
    if not resp.ok:
        raise CommandError(command, resp.completion)
    return resp


def uid_set(uids: Iterable[int]) -> str:
    return ",".join(str(u) for u in sorted(uids))


def _login_and_select(session: ImapSession, target: ImapTarget) -> None:
    _expect_ok(session.login(target.username, target.password), "LOGIN")
    logger.info("Logged in as %s", target.username)

    ns = session.command("NAMESPACE")
    if not ns.ok:
        logger.debug("NAMESPACE not supported: %s", ns.completion.rstrip())

    _expect_ok(session.command('SELECT "INBOX"'), "SELECT")


def _enumerate_uids(session: ImapSession) -> set[int]:
    resp = session.command("UID FETCH 1:* (FLAGS)")
    if not resp.ok:
        logger.warning("UID enumeration failed: %s", resp.completion.rstrip())
        return set()
    return uids_from_fetch(resp.untagged)


def _fetch_headers(session: ImapSession, uid: int) -> dict[str, str]:
    resp = session.command(f"UID FETCH {uid} BODY.PEEK[HEADER]")
    if resp.literal is None:
        logger.warning("No header block returned for UID %d", uid)
        return {}
    return parse_header_block(resp.literal)


def _scan_sentinels(
    session: ImapSession, subject: str, max_age: int, now: float
) -> tuple[float, set[int]]:
    """Returns (freshest sentinel time, stale sentinel UIDs)."""
    resp = session.command(f"UID SEARCH SUBJECT {quote(subject)}")
    freshest = 0.0
    stale: set[int] = set()
    for token in search_uids(resp):
        if not token.isdigit():
            continue
        body = session.command(f"UID FETCH {token} BODY.PEEK[TEXT]")
        sent = sentinel_timestamp(body.literal)
        if sent is None:
            continue
        freshest = max(freshest, sent)
        if max_age > 0 and now - sent > max_age:
            stale.add(int(token))
    return freshest, stale


def poll_and_triage(
    target: ImapTarget,
    handler: TriageHandler,
    policy: TriagePolicy = TriagePolicy(),
    *,
    handled: set[int] | None = None,
    opener: SessionOpener = open_session,
    clock: Callable[[], float] = time.time,
) -> str:
    """
    Walk INBOX once: classify every message by its headers, report the
    actionable UIDs into `handled` and check that mail is still arriving.

    Returns "" when healthy, otherwise a description of the staleness.
    """
    handled = set() if handled is None else handled
    now = clock()
    freshest = 0.0
    to_delete: set[int] = set()

    with opener(target) as session:
        _login_and_select(session, target)

        uids = _enumerate_uids(session)
        logger.info("%d message(s) in INBOX", len(uids))

        for uid in sorted(uids):
            headers = _fetch_headers(session, uid)
            if policy.sentinel_subject is None:
                ts = message_timestamp(headers)
                if ts is not None:
                    freshest = max(freshest, ts)

            verdict = classify(headers)
            if verdict.unsubscribe is not None:
                user_id, channel_id = verdict.unsubscribe
                logger.info("UID %d: unsubscribe %s from %s", uid, user_id, channel_id)
                if handler.unsubscribe(user_id, channel_id):
                    handled.add(uid)
            if verdict.bounce_id is not None:
                logger.info("UID %d: possible bounce for %s", uid, verdict.bounce_id)
                if handler.bounce(verdict.bounce_id):
                    handled.add(uid)

        if policy.sentinel_subject is not None:
            freshest, stale = _scan_sentinels(
                session, policy.sentinel_subject, policy.max_age_seconds, now
            )
            to_delete |= stale

        if policy.dispose == DISPOSE_DELETE:
            to_delete |= handled

        if policy.active and to_delete:
            seq = uid_set(to_delete)
            _expect_ok(session.command(f"UID STORE {seq} +FLAGS (\\Deleted)"), "STORE")
            _expect_ok(session.command("EXPUNGE"), "EXPUNGE")
            logger.info("Deleted %d message(s)", len(to_delete))

    if policy.max_age_seconds > 0 and now - freshest > policy.max_age_seconds:
        if policy.sentinel_subject is not None:
            return "No recent sentinel message found"
        return f"No message newer than {policy.max_age_seconds}s found in INBOX"
    return ""


def archive_move(
    target: ImapTarget,
    uids: Iterable[int],
    folder: str,
    *,
    opener: SessionOpener = open_session,
) -> bool:
    """
    Move `uids` from INBOX into `folder`, creating it first if needed.
    An empty set never touches the network; returns whether a move ran.
    """
    uid_list = sorted(set(uids))
    if not uid_list:
        return False

    with opener(target) as session:
        _login_and_select(session, target)

        created = session.command(f"CREATE {quote(folder)}")
        if not created.ok:
            # typically [ALREADYEXISTS]; MOVE below fails if it really is missing
            logger.debug("CREATE %s: %s", folder, created.completion.rstrip())

        _expect_ok(session.command(f"UID MOVE {uid_set(uid_list)} {quote(folder)}"), "MOVE")
        logger.info("Moved %d message(s) to %s", len(uid_list), folder)
    return True
