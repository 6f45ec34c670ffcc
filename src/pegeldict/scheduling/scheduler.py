import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable

from pegeldict.scheduling.cron import CronExpression
from pegeldict.utils.logging import get_logger

logger = get_logger(__name__)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class Scheduler:
    """Run an async job on a cron schedule, optionally once right away.

    The only state kept is the next fire time. A failing job is logged and
    the schedule carries on.
    """

    def __init__(
        self,
        cron: str,
        job: Callable[[], Awaitable[Any]],
        run_immediately: bool = False,
        max_runs: int | None = None,
        now_func: Callable[[], datetime] = _local_now,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.expression = CronExpression.parse(cron)
        self._job = job
        self.run_immediately = run_immediately
        self.max_runs = max_runs
        self._now = now_func
        self._sleep = sleep_func
        self.next_fire: datetime | None = None

    async def run(self) -> int:
        runs = 0
        if self.run_immediately:
            await self._run_job()
            runs += 1
        while self.max_runs is None or runs < self.max_runs:
            self.next_fire = self.expression.next_after(self._now())
            logger.info("Next run scheduled for %s", self.next_fire.isoformat())
            delay = (self.next_fire - self._now()).total_seconds()
            if delay > 0:
                await self._sleep(delay)
            await self._run_job()
            runs += 1
        return runs

    async def _run_job(self) -> None:
        try:
            await self._job()
        except Exception:
            logger.exception("Scheduled run failed")
