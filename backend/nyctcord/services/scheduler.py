"""In-process scheduler that drives poll rounds on a fixed interval."""

import asyncio

import structlog

from nyctcord.core.config import POLL_INTERVAL_SECONDS
from nyctcord.schemas.alerts import PollRoundStats
from nyctcord.services.poll_service import PollService

logger = structlog.get_logger(__name__)


class PollScheduler:
    """Owns the polling timer.

    One round runs eagerly on ``start()`` and then once per interval. Rounds never
    overlap. ``stop()`` is honoured between line transitions, never inside one.

    Example:
        scheduler = PollScheduler(poll_service)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, poll_service: PollService, interval: float = POLL_INTERVAL_SECONDS) -> None:
        self.poll_service = poll_service
        self.interval = interval
        self.last_stats: PollRoundStats | None = None
        self._stop_event = asyncio.Event()
        self._round_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> PollRoundStats:
        """Run one round now, waiting for any round already in progress."""
        async with self._round_lock:
            stats = await self.poll_service.run_once(should_stop=self._stop_event.is_set)
            self.last_stats = stats
            return stats

    def start(self) -> None:
        """
        Start the polling loop as a background task.

        Raises:
            RuntimeError: If the scheduler is already running
        """
        if self.is_running:
            msg = "Poll scheduler is already running"
            raise RuntimeError(msg)
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="poll-scheduler")
        logger.info("poll_scheduler_started", interval_seconds=self.interval)

    async def stop(self) -> None:
        """Signal shutdown and wait for the current round to reach a safe point."""
        self._stop_event.set()
        task = self._task
        if task is not None:
            await task
            self._task = None
        logger.info("poll_scheduler_stopped")

    async def wait(self) -> None:
        """Block until the polling loop exits."""
        if self._task is not None:
            await self._task

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while not self._stop_event.is_set():
            started = loop.time()
            try:
                await self.run_once()
            except Exception:
                # Next tick retries; the process keeps running
                logger.exception("poll_round_failed")

            delay = max(0.0, self.interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except TimeoutError:
                continue
