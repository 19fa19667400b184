"""Bot identity check for inbound webhook messages."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from botrelay.store.documents import DocumentStore, StoreUnavailableError

logger = logging.getLogger(__name__)

BOTS_COLLECTION = "bots"


class BotIdentityChecker:
    """Decides whether a bot id is currently recognized.

    Lookup order:
    1. Static fallback allow-list (bootstrap and local testing)
    2. A ``bots`` document whose own id matches
    3. A ``bots`` document whose ``botId`` field matches

    When the store is unavailable the answer degrades to the allow-list
    result, so identity is only as strong as that list during an outage.
    """

    def __init__(self, store: DocumentStore, fallback_ids: Iterable[str] = ()) -> None:
        self._store = store
        self._fallback_ids = frozenset(fallback_ids)

    @property
    def fallback_ids(self) -> frozenset[str]:
        return self._fallback_ids

    async def is_known(self, bot_id: str) -> bool:
        if bot_id in self._fallback_ids:
            return True

        try:
            if await self._store.get(BOTS_COLLECTION, bot_id) is not None:
                return True
            matches = await self._store.query(BOTS_COLLECTION, "botId", bot_id, limit=1)
        except StoreUnavailableError as e:
            logger.warning("Bot lookup for %s failed, using fallback list: %s", bot_id, e)
            return bot_id in self._fallback_ids
        return bool(matches)
