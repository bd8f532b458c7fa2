"""APScheduler-based background job service."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Coroutine, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from agent_bridge.config import SchedulerServiceConfig
from agent_bridge.log import get_logger

logger = get_logger(__name__)


class SchedulerService:
    """Runs periodic housekeeping jobs on the event loop."""

    def __init__(self, config: SchedulerServiceConfig):
        self._config = config
        self._scheduler = AsyncIOScheduler(timezone=config.timezone)

    async def start(self) -> None:
        self._scheduler.start()
        logger.info("scheduler_started", timezone=self._config.timezone)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            # Newer APScheduler releases finish shutdown on the next loop iteration
            await asyncio.sleep(0)
        logger.info("scheduler_stopped")

    async def health_check(self) -> bool:
        return self._scheduler.running

    def add_interval_job(
        self,
        callback: Callable[..., Coroutine[Any, Any, None]],
        seconds: float,
        job_id: Optional[str] = None,
        **kwargs: Any,
    ) -> str:
        """Run ``callback`` every ``seconds``. Returns the job ID."""
        job_id = job_id or uuid.uuid4().hex[:12]
        trigger = IntervalTrigger(seconds=seconds, timezone=self._config.timezone)
        self._scheduler.add_job(
            callback,
            trigger,
            id=job_id,
            kwargs=kwargs,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info("interval_job_added", job_id=job_id, seconds=seconds)
        return job_id

    def has_job(self, job_id: str) -> bool:
        return self._scheduler.get_job(job_id) is not None
