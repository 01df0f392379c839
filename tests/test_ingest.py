import asyncio
import io
import json
import unittest
from contextlib import redirect_stdout
from unittest.mock import AsyncMock, MagicMock, patch

from ingestor.ingest import build_arg_parser, build_config, main, serve
from ingestor.pipeline import ScrapeOutcome


class BuildConfigTestCase(unittest.TestCase):
    def test_source_default_schedule_is_applied(self) -> None:
        args = build_arg_parser().parse_args(["--source", "coingecko", "--db-url", "sqlite://"])

        config = build_config(args, env={})

        self.assertEqual(config.source, "coingecko")
        self.assertEqual(config.db_url, "sqlite://")
        self.assertEqual(config.schedule.scrape_schedule, "0 * * * *")

    def test_arguments_override_environment(self) -> None:
        args = build_arg_parser().parse_args(
            [
                "--schedule",
                "*/10 * * * *",
                "--request-timeout",
                "3",
                "--freshness-minutes",
                "2",
                "--overlap-guard",
                "--user-agent",
                "cli-agent",
            ]
        )

        config = build_config(
            args,
            env={
                "INGESTOR_DATABASE_URL": "sqlite:///env.db",
                "INGESTOR_SCHEDULE": "0 0 * * *",
                "INGESTOR_USER_AGENT": "env-agent",
            },
        )

        self.assertEqual(config.db_url, "sqlite:///env.db")
        self.assertEqual(config.schedule.scrape_schedule, "*/10 * * * *")
        self.assertEqual(config.timeout.request_timeout, 3.0)
        self.assertEqual(config.freshness_minutes, 2.0)
        self.assertTrue(config.schedule.overlap_guard)
        self.assertEqual(config.user_agent, "cli-agent")

    def test_environment_schedule_beats_source_default(self) -> None:
        args = build_arg_parser().parse_args([])

        config = build_config(args, env={"INGESTOR_SCHEDULE": "0 0 * * *"})

        self.assertEqual(config.schedule.scrape_schedule, "0 0 * * *")

    def test_modes_are_mutually_exclusive(self) -> None:
        with self.assertRaises(SystemExit):
            build_arg_parser().parse_args(["--once", "--stats"])


class MainTestCase(unittest.TestCase):
    def test_stats_on_empty_database(self) -> None:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            exit_code = main(["--db-url", "sqlite://", "--stats"])

        self.assertEqual(exit_code, 0)
        stats = json.loads(buffer.getvalue())
        self.assertEqual(stats["total"], 0)
        self.assertEqual(stats["average_score"], 0)

    @patch("ingestor.ingest.build_service")
    def test_once_reports_failed_scrape(self, build_service: MagicMock) -> None:
        build_service.return_value.perform_scraping = AsyncMock(
            return_value=ScrapeOutcome(success=False, message="fetch failed: boom")
        )

        buffer = io.StringIO()
        with redirect_stdout(buffer):
            exit_code = main(["--db-url", "sqlite://", "--once"])

        self.assertEqual(exit_code, 1)
        self.assertFalse(json.loads(buffer.getvalue())["success"])

    def test_missing_database_url_is_rejected(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            with self.assertRaises(SystemExit) as ctx:
                main([])

        self.assertEqual(ctx.exception.code, 2)

    def test_invalid_schedule_is_rejected(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            main(["--db-url", "sqlite://", "--schedule", "every minute please"])

        self.assertEqual(ctx.exception.code, 2)


class ServeTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_serve_triggers_on_start_and_stops_on_cancel(self) -> None:
        scheduler = MagicMock()
        scheduler.trigger_now = AsyncMock(return_value=ScrapeOutcome(success=True, message="completed"))

        task = asyncio.create_task(serve(scheduler, "*/30 * * * *", run_on_start=True))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        scheduler.start.assert_called_once_with("*/30 * * * *")
        scheduler.trigger_now.assert_awaited_once()
        scheduler.stop.assert_called_once()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
