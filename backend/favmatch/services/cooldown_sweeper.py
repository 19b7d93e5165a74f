"""Background tick that persists expired cooldowns.

Expiry is already applied lazily on every quota read and write; the sweeper
only makes stored records fresh for clients polling status. Both paths run
the same `maybe_expire_cooldown` transition, so they always agree.
"""

import asyncio
import logging
from typing import Optional

from favmatch.errors import ContentionError, StoreError
from favmatch.models.documents import QUOTAS
from favmatch.services.quota import UsageQuota, in_cooldown
from favmatch.services.quota_service import QuotaService

logger = logging.getLogger(__name__)


class CooldownSweeper:

    def __init__(self, quotas: QuotaService, interval_seconds: float = 10):
        self.quotas = quotas
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def sweep_once(self) -> int:
        """Reset every quota whose cooldown has ended. Returns how many."""
        store = self.quotas.store
        now = self.quotas.clock()
        reset = 0
        for user_id in await store.list_document_ids(QUOTAS):
            data = await store.get_document(QUOTAS, user_id)
            if not data:
                continue
            quota = UsageQuota.from_document(data)
            if quota.cooldown_started_at is None or in_cooldown(quota, now, self.quotas.policy):
                continue
            try:
                await self.quotas.refresh(user_id)
            except ContentionError:
                # A request is writing this quota; lazy expiry covers it
                logger.debug("Cooldown sweep skipped %s: contention", user_id)
                continue
            reset += 1
        if reset:
            logger.info("Cooldown sweep reset %d quotas", reset)
        return reset

    async def run(self) -> None:
        while True:
            try:
                await self.sweep_once()
            except StoreError as e:
                logger.warning("Cooldown sweep failed: %s", e)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="cooldown-sweeper")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
