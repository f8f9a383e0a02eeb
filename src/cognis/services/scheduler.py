"""APScheduler-based cron dispatcher.

Polls :class:`~cognis.services.cron.CronService` on a fixed interval, expands
``workflow:*`` job messages through the workflow service and publishes the
resulting text to the message bus with a frame marker.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cognis.core.messages import ChatMessage
from cognis.log import get_logger
from cognis.services.base import Service
from cognis.services.bus import MessageBus
from cognis.services.cron import CronJob, CronService
from cognis.services.workflow import WorkflowService

logger = get_logger(__name__)

JOB_ID = "cron-dispatch"
INTERVAL_SECONDS = 30
INITIAL_DELAY_SECONDS = 2

DAILY_BRIEF = "workflow:daily_brief"
GOAL_CHECKIN_PREFIX = "workflow:goal_checkin:"
RELATIONSHIP_NUDGE = "workflow:relationship_nudge"
EMPTY_NUDGE = "Relationship nudge: add contacts in profile to enable this workflow."


class CronDispatcher(Service):
    """Background tick that fans fired cron jobs into the message bus."""

    def __init__(
        self,
        cron: CronService,
        bus: MessageBus,
        workflows: Optional[WorkflowService] = None,
        interval_seconds: int = INTERVAL_SECONDS,
        initial_delay_seconds: int = INITIAL_DELAY_SECONDS,
    ):
        self._cron = cron
        self._bus = bus
        self._workflows = workflows
        self._interval = max(1, interval_seconds)
        self._initial_delay = max(0, initial_delay_seconds)
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)

    @property
    def service_name(self) -> str:
        return "cron_dispatcher"

    async def start(self) -> None:
        first_run = datetime.now(timezone.utc) + timedelta(seconds=self._initial_delay)
        self._scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=self._interval),
            id=JOB_ID,
            next_run_time=first_run,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("cron_dispatcher_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("cron_dispatcher_stopped")

    async def health_check(self) -> bool:
        return self._scheduler.running

    async def tick(self) -> int:
        """Run due jobs once; returns the number of messages published."""
        fired: list[CronJob] = []
        try:
            self._cron.run_due(fired.append)
        except Exception as e:
            logger.warning("cron_dispatch_failed", error=str(e))
            return 0

        published = 0
        for job in fired:
            try:
                tagged = await self.expand(job.message)
            except Exception as e:
                logger.warning("cron_workflow_failed", job_id=job.id, error=str(e))
                continue
            if tagged:
                self._bus.publish(ChatMessage.assistant(tagged))
                published += 1
        if fired:
            logger.info("cron_jobs_dispatched", fired=len(fired), published=published)
        return published

    async def expand(self, raw_message: Optional[str]) -> str:
        """Map a job message to the tagged bus text, or ``""`` when nothing should be sent."""
        message = (raw_message or "").strip()
        lowered = message.lower()

        if lowered == DAILY_BRIEF:
            body = self._require_workflows().build_daily_executive_brief()
            marker = "[workflow:daily_brief]"
        elif lowered.startswith(GOAL_CHECKIN_PREFIX):
            goal = message[len(GOAL_CHECKIN_PREFIX):].strip()
            body = await self._require_workflows().build_goal_checkin(goal)
            marker = "[workflow:goal_checkin]"
        elif lowered == RELATIONSHIP_NUDGE:
            body = self._require_workflows().build_relationship_nudge("") or EMPTY_NUDGE
            marker = "[workflow:workflow_result]"
        else:
            return message

        return f"{marker}\n{body}" if body.strip() else ""

    def _require_workflows(self) -> WorkflowService:
        if self._workflows is None:
            raise RuntimeError("workflow service is not configured")
        return self._workflows
