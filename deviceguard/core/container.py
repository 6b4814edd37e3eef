"""Dependency container wiring the database, locks and domain services together."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from deviceguard.core.clock import Clock, utcnow
from deviceguard.core.config import Settings, get_settings
from deviceguard.core.locks import KeyedLock
from deviceguard.infrastructure.database.session import (
    build_engine,
    build_session_factory,
    create_all,
)
from deviceguard.modules.devices.checker import PublicStatusChecker
from deviceguard.modules.otp.delivery import (
    DeliveryChannel,
    DeliveryDispatcher,
    LoggingDeliveryChannel,
)
from deviceguard.modules.transfers.sweeper import TransferSweeper
from deviceguard.modules.transfers.workflow import TransferWorkflow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ApplicationContainer:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    locks: KeyedLock
    dispatcher: DeliveryDispatcher
    workflow: TransferWorkflow
    checker: PublicStatusChecker
    sweeper: TransferSweeper
    clock: Clock = utcnow
    _started: bool = field(default=False, repr=False)

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        *,
        channel: Optional[DeliveryChannel] = None,
        clock: Clock = utcnow,
    ) -> "ApplicationContainer":
        settings = settings or get_settings()
        engine = build_engine(settings)
        session_factory = build_session_factory(engine)
        locks = KeyedLock(settings.locks.acquire_timeout_seconds)
        dispatcher = DeliveryDispatcher(
            channel or LoggingDeliveryChannel(reveal_codes=settings.otp.log_codes),
            timeout=settings.otp.delivery_timeout_seconds,
        )
        workflow = TransferWorkflow(
            session_factory=session_factory,
            locks=locks,
            dispatcher=dispatcher,
            otp_settings=settings.otp,
            transfer_settings=settings.transfers,
            clock=clock,
        )
        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            locks=locks,
            dispatcher=dispatcher,
            workflow=workflow,
            checker=PublicStatusChecker(session_factory),
            sweeper=TransferSweeper(workflow, interval=settings.transfers.sweep_interval_seconds),
            clock=clock,
        )

    async def start(self, *, run_sweeper: Optional[bool] = None) -> None:
        if self._started:
            return
        await create_all(self.engine)
        if self.settings.transfers.sweep_enabled if run_sweeper is None else run_sweeper:
            self.sweeper.start()
        self._started = True
        logger.info("%s container started (%s)", self.settings.project_name, self.settings.environment)

    async def shutdown(self) -> None:
        await self.sweeper.stop()
        await self.dispatcher.drain()
        await self.engine.dispose()
        self._started = False
        logger.info("%s container stopped", self.settings.project_name)


__all__ = ["ApplicationContainer"]
