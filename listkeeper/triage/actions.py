from __future__ import annotations

import logging

from listkeeper.core.db import Database
from listkeeper.core import store
from listkeeper.triage.procedures import TriageHandler


class StoreTriage(TriageHandler):
    """
    Applies triage decisions to the state database. In observe mode
    (`active=False`) decisions are only logged.
    """

    def __init__(
        self, db: Database, *, active: bool, logger: logging.Logger | None = None
    ) -> None:
        self._db = db
        self._active = active
        self._logger = logger or logging.getLogger(__name__)

    def unsubscribe(self, user_id: str, channel_id: str) -> bool:
        hits = store.count_subscriptions(self._db, user_id=user_id, channel_id=channel_id)
        self._logger.info(
            "Hits for unsubscribe of %s / %s: %d", user_id, channel_id, hits
        )
        if self._active:
            store.delete_subscription(self._db, user_id=user_id, channel_id=channel_id)
        # a repeated request for an already removed subscription is still done
        return True

    def bounce(self, delivery_id: str) -> bool:
        row = store.find_queued_send(self._db, delivery_id)
        if row is None:
            self._logger.warning("Unknown bounce for delivery id %s", delivery_id)
            return False
        self._logger.info("Bounce was for %s, noting", row["destination"])
        if self._active:
            store.mark_bounced(self._db, delivery_id)
        return True
