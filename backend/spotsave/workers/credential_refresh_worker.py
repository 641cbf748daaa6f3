import asyncio
from typing import Any, Callable, Optional
import structlog

from spotsave.core.config import settings
from spotsave.services.credential_store import RefreshOutcome, SessionRegistry, session_registry

logger = structlog.get_logger(__name__)


class CredentialRefreshWorker:
    """Background task that refreshes session credentials before they expire"""

    def __init__(
        self,
        registry: SessionRegistry = None,
        poll_interval: Optional[float] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.registry = registry or session_registry
        self.poll_interval = settings.CREDENTIAL_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.sleep = sleep
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def run_once(self):
        """Tick every session once"""
        outcomes = await self.registry.refresh_due()
        refreshed = [user_id for user_id, outcome in outcomes.items() if outcome is not RefreshOutcome.SKIPPED]
        if refreshed:
            logger.info("Credential refresh tick", sessions=len(outcomes), attempted=len(refreshed))
        return outcomes

    async def run(self):
        """Poll until stopped or cancelled"""
        self.running = True
        logger.info("Credential refresh worker starting", poll_interval=self.poll_interval)

        while self.running:
            try:
                await self.run_once()
                await self.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Credential refresh worker error", error=str(e))
                await self.sleep(self.poll_interval)

        self.running = False
        logger.info("Credential refresh worker stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        self.running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


# Global instance
credential_refresh_worker = CredentialRefreshWorker()
