"""Background task that closes transfer attempts left open past their window."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .workflow import TransferWorkflow

logger = logging.getLogger(__name__)


class TransferSweeper:
    def __init__(self, workflow: TransferWorkflow, interval: float = 60.0, batch_size: int = 100) -> None:
        self.workflow = workflow
        self.interval = interval
        self.batch_size = batch_size
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Transfer sweeper started (every %.0fs)", self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Transfer sweeper stopped")

    async def sweep_once(self) -> int:
        """Expire every stale attempt, batch by batch."""
        total = 0
        while True:
            expired = await self.workflow.expire_stale(self.batch_size)
            total += expired
            if expired < self.batch_size:
                return total

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    await self.sweep_once()
                except Exception:  # pylint: disable=broad-except
                    logger.exception("Transfer sweep failed, retrying in %.0fs", self.interval)
        except asyncio.CancelledError:
            logger.debug("Transfer sweeper task cancelled")
            raise


__all__ = ["TransferSweeper"]
