from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from listkeeper.core.config import AppConfig, load_config
from listkeeper.core.db import Database
from listkeeper.core.schema import ensure_schema_v1, verify_schema_hash
from listkeeper.core.secrets import secret_provider
from listkeeper.imap.errors import ImapError
from listkeeper.imap.session import ImapTarget, open_session
from listkeeper.triage.actions import StoreTriage
from listkeeper.triage.procedures import (
    DISPOSE_ARCHIVE,
    TriagePolicy,
    archive_move,
    poll_and_triage,
)

logger = logging.getLogger("listkeeper")


@dataclass(frozen=True)
class PollOutcome:
    staleness: str
    handled: frozenset[int]
    archived: bool


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="listkeeper", add_help=True)
    p.add_argument(
        "--config",
        type=Path,
        default=Path("listkeeper.yml"),
        help="Path to config file (default: ./listkeeper.yml)",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create or verify the state database")

    poll = sub.add_parser("poll", help="Triage unsubscribe requests and bounces")
    poll.add_argument(
        "--active",
        action="store_true",
        help="act on messages, don't just observe",
    )

    move = sub.add_parser("move", help="Move messages to the archive folder")
    move.add_argument("uids", nargs="+", type=int, metavar="UID")

    return p


def build_target(cfg: AppConfig) -> ImapTarget:
    creds = secret_provider(cfg.secrets.provider).resolve(cfg.secrets.reference)
    return ImapTarget(
        host=cfg.imap.host,
        port=cfg.imap.port,
        username=creds.username,
        password=creds.password,
        hostname=cfg.imap.hostname,
        connect_timeout=cfg.imap.connect_timeout,
        min_cert_days=cfg.imap.min_cert_days,
    )


def open_database(cfg: AppConfig) -> Database:
    cfg.state_db.parent.mkdir(parents=True, exist_ok=True)
    db = Database.open(cfg.state_db)
    ensure_schema_v1(db)
    verify_schema_hash(db)
    return db


def run_poll(cfg: AppConfig, *, active: bool) -> PollOutcome:
    target = build_target(cfg)
    policy = TriagePolicy(
        active=active,
        dispose=cfg.triage.dispose,
        sentinel_subject=cfg.triage.sentinel_subject,
        max_age_seconds=cfg.triage.max_age_seconds,
    )

    handled: set[int] = set()
    with open_database(cfg) as db:
        staleness = poll_and_triage(
            target,
            StoreTriage(db, active=active),
            policy,
            handled=handled,
            opener=open_session,
        )

    archived = False
    if active and policy.dispose == DISPOSE_ARCHIVE:
        archived = archive_move(target, handled, cfg.imap.archive_folder, opener=open_session)

    return PollOutcome(staleness=staleness, handled=frozenset(handled), archived=archived)


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()
    ns = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, ns.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = load_config(ns.config)

    if ns.command == "init":
        with open_database(cfg):
            pass
        print(f"State database ready: {cfg.state_db}")
        return 0

    try:
        if ns.command == "poll":
            outcome = run_poll(cfg, active=ns.active)
            print(f"{len(outcome.handled)} message(s) handled")
            if outcome.staleness:
                print(outcome.staleness)
                return 1
            return 0

        if ns.command == "move":
            archive_move(build_target(cfg), ns.uids, cfg.imap.archive_folder, opener=open_session)
            return 0
    except ImapError as e:
        logger.error("%s", e)
        return 2

    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
