import asyncio
import unittest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from apscheduler.triggers.cron import CronTrigger

from ingestor.scheduler import (
    CLEANUP_JOB,
    SCRAPE_JOB,
    IngestScheduler,
    build_trigger,
    convert_weekday_field,
)

WEDNESDAY = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
SATURDAY = datetime(2024, 5, 4, 12, 0, tzinfo=timezone.utc)


def _next_fire(expression: str, now: datetime) -> datetime:
    return build_trigger(expression).get_next_fire_time(None, now)


class BuildTriggerTestCase(unittest.TestCase):
    def test_valid_expression(self) -> None:
        self.assertIsInstance(build_trigger("*/30 * * * *"), CronTrigger)

    def test_invalid_expressions_raise_value_error(self) -> None:
        for expression in ("not a cron", "61 * * * *", "* * *", "* * * * 8", "* * * * 5-1", "* * * * funday"):
            with self.subTest(expression=expression):
                with self.assertRaises(ValueError):
                    build_trigger(expression)

    def test_sunday_is_zero_or_seven(self) -> None:
        for expression in ("0 2 * * 0", "0 2 * * 7", "0 2 * * sun"):
            with self.subTest(expression=expression):
                fire = _next_fire(expression, WEDNESDAY)
                self.assertEqual(fire.weekday(), 6)
                self.assertEqual((fire.day, fire.hour), (5, 2))

    def test_weekday_range_starts_on_monday(self) -> None:
        fire = _next_fire("0 9 * * 1-5", SATURDAY)

        self.assertEqual(fire.weekday(), 0)
        self.assertEqual(fire.day, 6)

    def test_range_ending_on_seven(self) -> None:
        # Saturday through Sunday
        fire = _next_fire("0 9 * * 6-7", WEDNESDAY)

        self.assertEqual(fire.weekday(), 5)

    def test_convert_weekday_field(self) -> None:
        self.assertEqual(convert_weekday_field("*"), "*")
        self.assertEqual(convert_weekday_field("0"), "6")
        self.assertEqual(convert_weekday_field("7"), "6")
        self.assertEqual(convert_weekday_field("1-5"), "0,1,2,3,4")
        self.assertEqual(convert_weekday_field("0,3"), "2,6")
        self.assertEqual(convert_weekday_field("*/2"), "1,3,5,6")
        self.assertEqual(convert_weekday_field("0-6"), "0,1,2,3,4,5,6")


class IngestSchedulerTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.scrape = AsyncMock(return_value={"success": True})
        self.cleanup = AsyncMock(return_value={"modified_count": 0})
        self.scheduler = IngestScheduler(self.scrape, self.cleanup, cleanup_schedule="0 2 * * *")

    async def asyncTearDown(self) -> None:
        self.scheduler.stop()

    async def test_start_registers_scrape_and_cleanup_jobs(self) -> None:
        self.scheduler.start("*/30 * * * *")

        status = self.scheduler.get_status()
        self.assertTrue(status["is_running"])
        self.assertEqual(status["job_count"], 2)
        self.assertEqual(sorted(status["active_jobs"]), [CLEANUP_JOB, SCRAPE_JOB])
        self.assertEqual(status["schedules"][SCRAPE_JOB], "*/30 * * * *")

    async def test_registered_job_uses_crontab_weekdays(self) -> None:
        self.scheduler.start("0 2 * * 0")

        next_run = self.scheduler._jobs[SCRAPE_JOB].handle.next_run_time
        self.assertEqual(next_run.weekday(), 6)

    async def test_second_start_is_ignored(self) -> None:
        self.scheduler.start("*/30 * * * *")
        self.scheduler.start("*/5 * * * *")

        status = self.scheduler.get_status()
        self.assertEqual(status["job_count"], 2)
        self.assertEqual(status["schedules"][SCRAPE_JOB], "*/30 * * * *")

    async def test_invalid_schedule_leaves_scheduler_stopped(self) -> None:
        with self.assertRaises(ValueError):
            self.scheduler.start("every half hour")

        self.assertFalse(self.scheduler.is_running)
        self.assertEqual(self.scheduler.get_status()["job_count"], 0)

    async def test_stop_clears_jobs(self) -> None:
        self.scheduler.start("*/30 * * * *")

        self.scheduler.stop()

        self.assertEqual(
            self.scheduler.get_status(),
            {"is_running": False, "active_jobs": [], "job_count": 0, "schedules": {}},
        )
        # Stopping twice is harmless
        self.scheduler.stop()

    async def test_reschedule_while_stopped_does_not_start(self) -> None:
        self.scheduler.reschedule("*/5 * * * *")

        self.assertFalse(self.scheduler.is_running)
        self.assertEqual(self.scheduler.get_status()["job_count"], 0)

    async def test_reschedule_replaces_only_scrape_job(self) -> None:
        self.scheduler.start("*/30 * * * *")

        self.scheduler.update_schedule("*/5 * * * *")

        status = self.scheduler.get_status()
        self.assertEqual(status["job_count"], 2)
        self.assertEqual(status["schedules"], {SCRAPE_JOB: "*/5 * * * *", CLEANUP_JOB: "0 2 * * *"})

    async def test_invalid_reschedule_keeps_current_job(self) -> None:
        self.scheduler.start("*/30 * * * *")

        with self.assertRaises(ValueError):
            self.scheduler.reschedule("*/5 * *")

        self.assertEqual(self.scheduler.get_status()["schedules"][SCRAPE_JOB], "*/30 * * * *")

    async def test_trigger_now_returns_result_and_propagates_errors(self) -> None:
        self.assertEqual(await self.scheduler.trigger_now(), {"success": True})

        self.scrape.side_effect = RuntimeError("store exploded")
        with self.assertRaises(RuntimeError):
            await self.scheduler.trigger_now()

    async def test_trigger_now_works_without_start(self) -> None:
        await self.scheduler.trigger_now()

        self.scrape.assert_awaited_once()
        self.assertFalse(self.scheduler.is_running)

    async def test_perform_maintenance_runs_cleanup(self) -> None:
        result = await self.scheduler.perform_maintenance()

        self.assertEqual(result, {"modified_count": 0})
        self.cleanup.assert_awaited_once()

    async def test_scheduled_firing_logs_and_swallows_errors(self) -> None:
        failing = AsyncMock(side_effect=RuntimeError("boom"))

        with self.assertLogs("ingestor.scheduler", level="ERROR") as captured:
            await self.scheduler._run_scheduled(SCRAPE_JOB, failing)

        self.assertIn("Scheduled scrape job failed", captured.output[0])

    async def test_overlapping_firings_run_without_guard(self) -> None:
        release = asyncio.Event()
        calls = 0

        async def slow_scrape():
            nonlocal calls
            calls += 1
            await release.wait()

        first = asyncio.create_task(self.scheduler._run_scheduled(SCRAPE_JOB, slow_scrape))
        second = asyncio.create_task(self.scheduler._run_scheduled(SCRAPE_JOB, slow_scrape))
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(first, second)

        self.assertEqual(calls, 2)

    async def test_overlap_guard_skips_firing_in_progress(self) -> None:
        scheduler = IngestScheduler(self.scrape, self.cleanup, cleanup_schedule="0 2 * * *", overlap_guard=True)
        release = asyncio.Event()
        calls = 0

        async def slow_scrape():
            nonlocal calls
            calls += 1
            await release.wait()

        first = asyncio.create_task(scheduler._run_scheduled(SCRAPE_JOB, slow_scrape))
        await asyncio.sleep(0)
        await scheduler._run_scheduled(SCRAPE_JOB, slow_scrape)
        release.set()
        await first

        self.assertEqual(calls, 1)

        # Guard is released once the run completes
        await scheduler._run_scheduled(SCRAPE_JOB, slow_scrape)
        self.assertEqual(calls, 2)

    async def test_independent_schedulers(self) -> None:
        other = IngestScheduler(AsyncMock(), AsyncMock(), cleanup_schedule="0 3 * * *")
        self.scheduler.start("*/30 * * * *")
        try:
            self.assertFalse(other.is_running)
            other.start("0 * * * *")
            self.assertEqual(other.get_status()["schedules"][CLEANUP_JOB], "0 3 * * *")
            self.assertEqual(self.scheduler.get_status()["schedules"][CLEANUP_JOB], "0 2 * * *")
        finally:
            other.stop()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
