"""
APScheduler-backed recurring jobs for one ingestion source.

Jobs (five-field crontab expressions, 0 or 7 = Sunday, evaluated in UTC)
------------------------------------------------------------------------
  scrape   caller-supplied recurrence; runs the scrape-and-save pipeline
  cleanup  fixed daily recurrence from the source definition; soft-expires
             records older than the source's retention

Scheduled firings and manual calls take different paths. A scheduled firing
is wrapped so that any exception is logged and swallowed, keeping the
schedule alive. ``trigger_now`` and ``perform_maintenance`` await
the action directly and let errors reach the caller.

Overlapping firings
-------------------
By default nothing stops a slow scrape from overlapping the next firing of the
same job; both runs then write to the store concurrently. Pass
``overlap_guard=True`` to skip a firing while the previous one of the same job
is still in flight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

LOGGER = logging.getLogger(__name__)

SCRAPE_JOB = "scrape"
CLEANUP_JOB = "cleanup"
SCHEDULER_TIMEZONE = "UTC"

# APScheduler skips a firing once this many instances of the job are running;
# kept high so overlap is only prevented by the explicit guard.
_MAX_CONCURRENT_FIRINGS = 32
_MISFIRE_GRACE_SECONDS = 60

JobAction = Callable[[], Awaitable[Any]]


# Crontab weekday numbering: 0 and 7 are Sunday
_CRONTAB_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _crontab_weekday(token: str) -> int:
    token = token.strip().lower()
    if token in _CRONTAB_WEEKDAYS:
        return _CRONTAB_WEEKDAYS.index(token)
    value = int(token)
    if not 0 <= value <= 7:
        raise ValueError(f"weekday {value} is out of range 0-7")
    return value


def convert_weekday_field(field: str) -> str:
    """Translate a crontab weekday field into APScheduler's Monday=0 numbering.

    Lists, ranges and steps are expanded into an explicit list of days, so
    ranges that wrap past Sunday in APScheduler's numbering stay valid.
    """

    if field == "*":
        return field

    days: set[int] = set()
    for part in field.split(","):
        base, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"step must be positive in {part!r}")

        if base == "*":
            first, last = 0, 6
        elif "-" in base:
            first_text, last_text = base.split("-", 1)
            first, last = _crontab_weekday(first_text), _crontab_weekday(last_text)
        else:
            first = _crontab_weekday(base)
            last = 6 if step_text else first
        if first > last:
            raise ValueError(f"range {base!r} runs backwards")

        days.update(day % 7 for day in range(first, last + 1, step))

    return ",".join(str((day - 1) % 7) for day in sorted(days, key=lambda day: (day - 1) % 7))


def build_trigger(expression: str) -> CronTrigger:
    """Parse a five-field crontab expression; raises ``ValueError`` when invalid."""

    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Invalid recurrence expression {expression!r}: expected 5 fields, got {len(fields)}")

    minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=convert_weekday_field(day_of_week),
            timezone=SCHEDULER_TIMEZONE,
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid recurrence expression {expression!r}: {exc}") from exc


@dataclass(frozen=True, slots=True)
class ScheduledJob:
    name: str
    schedule: str
    action: JobAction
    handle: Job


class IngestScheduler:
    """Owns the scrape and cleanup jobs of one source.

    Each instance has its own job registry and its own ``AsyncIOScheduler``,
    so several schedulers can coexist in one process.
    """

    def __init__(
        self,
        scrape: JobAction,
        cleanup: JobAction,
        *,
        cleanup_schedule: str,
        overlap_guard: bool = False,
    ) -> None:
        self._scrape = scrape
        self._cleanup = cleanup
        self._cleanup_schedule = cleanup_schedule
        self._overlap_guard = overlap_guard
        self._scheduler: AsyncIOScheduler | None = None
        self._jobs: dict[str, ScheduledJob] = {}
        self._in_flight: set[str] = set()

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def start(self, schedule: str) -> None:
        if self.is_running:
            LOGGER.info("Scheduler is already running; ignoring start(%r)", schedule)
            return

        scrape_trigger = build_trigger(schedule)
        cleanup_trigger = build_trigger(self._cleanup_schedule)

        LOGGER.info("Starting scheduler with scrape schedule %r", schedule)
        self._scheduler = AsyncIOScheduler(
            timezone=SCHEDULER_TIMEZONE,
            job_defaults={
                "coalesce": True,
                "max_instances": _MAX_CONCURRENT_FIRINGS,
                "misfire_grace_time": _MISFIRE_GRACE_SECONDS,
            },
        )
        self._scheduler.start()
        self._register(self._scheduler, SCRAPE_JOB, schedule, scrape_trigger, self._scrape)
        self._register(self._scheduler, CLEANUP_JOB, self._cleanup_schedule, cleanup_trigger, self._cleanup)

        for job in self._jobs.values():
            LOGGER.info("Scheduled job %s (%s) - next run: %s", job.name, job.schedule, job.handle.next_run_time)

    def stop(self) -> None:
        if self._scheduler is None:
            LOGGER.info("Scheduler is not running; ignoring stop()")
            return

        LOGGER.info("Stopping scheduler")
        for name in list(self._jobs):
            self._jobs.pop(name).handle.remove()
            LOGGER.info("Stopped %s job", name)
        # In-flight runs are not cancelled; only future firings stop
        self._scheduler.shutdown(wait=False)
        self._scheduler = None

    def reschedule(self, schedule: str) -> None:
        if self._scheduler is None:
            LOGGER.info("Scheduler is not running; ignoring reschedule(%r)", schedule)
            return

        trigger = build_trigger(schedule)
        LOGGER.info("Updating scrape schedule to %r", schedule)
        current = self._jobs.pop(SCRAPE_JOB, None)
        if current is not None:
            current.handle.remove()
        self._register(self._scheduler, SCRAPE_JOB, schedule, trigger, self._scrape)

    update_schedule = reschedule

    async def trigger_now(self) -> Any:
        """Run the scrape pipeline immediately; errors reach the caller."""

        LOGGER.info("Triggering immediate scrape")
        result = await self._scrape()
        LOGGER.info("Immediate scrape completed: %s", result)
        return result

    async def perform_maintenance(self) -> Any:
        """Run the cleanup job immediately; errors reach the caller."""

        LOGGER.info("Performing maintenance")
        result = await self._cleanup()
        LOGGER.info("Maintenance completed: %s", result)
        return result

    def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "active_jobs": list(self._jobs),
            "job_count": len(self._jobs),
            "schedules": {name: job.schedule for name, job in self._jobs.items()},
        }

    def _register(
        self,
        scheduler: AsyncIOScheduler,
        name: str,
        schedule: str,
        trigger: CronTrigger,
        action: JobAction,
    ) -> None:
        handle = scheduler.add_job(
            self._run_scheduled,
            trigger=trigger,
            args=(name, action),
            id=name,
            name=name,
            replace_existing=True,
        )
        self._jobs[name] = ScheduledJob(name=name, schedule=schedule, action=action, handle=handle)

    async def _run_scheduled(self, name: str, action: JobAction) -> None:
        if self._overlap_guard:
            if name in self._in_flight:
                LOGGER.warning("Skipping %s firing; previous run still in progress", name)
                return
            self._in_flight.add(name)

        LOGGER.info("Running scheduled %s job", name)
        try:
            result = await action()
            LOGGER.info("Scheduled %s job completed: %s", name, result)
        except Exception:
            LOGGER.exception("Scheduled %s job failed", name)
        finally:
            if self._overlap_guard:
                self._in_flight.discard(name)


__all__ = [
    "CLEANUP_JOB",
    "SCRAPE_JOB",
    "IngestScheduler",
    "ScheduledJob",
    "build_trigger",
    "convert_weekday_field",
]
