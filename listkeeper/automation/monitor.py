from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from listkeeper.cli import run_poll
from listkeeper.core.config import ConfigError, load_config
from listkeeper.core.db import DatabaseError
from listkeeper.core.notify import notify
from listkeeper.core.secrets import SecretProviderError
from listkeeper.imap.errors import ImapError

EXIT_HEALTHY = 0
EXIT_STALE = 1
EXIT_FAILED = 2


def _say(msg: str) -> None:
    sys.stderr.write("[listkeeper-monitor] " + msg + "\n")


def main(argv: list[str] | None = None) -> int:
    """
    Cron entry point: one poll per invocation, retries are the next run.
    """
    parser = argparse.ArgumentParser(prog="listkeeper-monitor")
    parser.add_argument("--config", type=Path, default=Path("listkeeper.yml"))
    parser.add_argument(
        "--observe",
        action="store_true",
        help="report only, leave mailbox and database untouched",
    )
    ns = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = load_config(ns.config)
        outcome = run_poll(cfg, active=not ns.observe)
    except (ConfigError, SecretProviderError, DatabaseError, ImapError) as e:
        _say("poll failed: " + str(e))
        notify("ListKeeper", f"Mailbox poll failed: {e}")
        return EXIT_FAILED
    except Exception as e:
        # exit 1 is reserved for staleness
        _say("poll failed unexpectedly: " + repr(e))
        notify("ListKeeper", f"Mailbox poll failed: {e!r}")
        return EXIT_FAILED

    _say(
        f"handled={len(outcome.handled)} archived={'yes' if outcome.archived else 'no'}"
    )
    if outcome.staleness:
        _say("stale: " + outcome.staleness)
        notify("ListKeeper", outcome.staleness)
        return EXIT_STALE
    return EXIT_HEALTHY


if __name__ == "__main__":
    raise SystemExit(main())
