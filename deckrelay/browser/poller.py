"""Bounded-time polling for asynchronous UI transitions.

Neither target application pushes a "done" signal, so every transition
(login, LLM response, outline generation, button enablement, rendering) is
observed by re-evaluating a predicate against the live DOM until it holds or a
deadline passes. Latency is highly variable (deck generation can exceed ten
minutes) so long waits report progress at a coarse cadence instead of looking
hung.

A timeout is a normal outcome, not an exception: the caller decides whether to
continue optimistically or abort.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from loguru import logger


Predicate = Callable[[], Awaitable[Any]]
ProgressHook = Callable[[float], Awaitable[None]]


class PollOutcome(str, Enum):
    PENDING = "pending"
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollResult:
    """Terminal result of one poll run.

    ``value`` is whatever truthy object the predicate returned on the
    satisfying tick (typically a ResolvedElement), so the caller can act on
    exactly that element.
    """
    outcome: PollOutcome
    elapsed: float
    ticks: int
    value: Any = None
    description: str = ""

    @property
    def satisfied(self) -> bool:
        return self.outcome is PollOutcome.SATISFIED

    @property
    def timed_out(self) -> bool:
        return self.outcome is PollOutcome.TIMED_OUT


class StatePoller:
    """Evaluates completion predicates until satisfied or timed out.

    The clock and sleep functions are injectable so long waits can be tested
    without real time passing.
    """

    def __init__(
        self,
        run_id: str = "N/A",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.run_id = run_id
        self.clock = clock
        self.sleep = sleep

    async def _tick(self, predicate: Predicate, description: str) -> Any:
        try:
            return await predicate()
        except Exception as e:
            # The DOM may be mid-replacement; treat as "not yet"
            logger.debug(f"[{self.run_id}] Predicate for {description} raised: {e}")
            return None

    async def poll_until(
        self,
        predicate: Predicate,
        timeout: float,
        interval: float,
        description: str = "condition",
        progress_every: float = 60.0,
        on_progress: Optional[ProgressHook] = None,
    ) -> PollResult:
        """
        Re-evaluate ``predicate`` until it returns a truthy value or ``timeout`` elapses.

        Args:
            predicate: Coroutine function evaluated once per tick
            timeout: Seconds before giving up (never returns TimedOut earlier)
            interval: Seconds slept between ticks
            description: What is being waited for, used in logs
            progress_every: Seconds between progress log lines
            on_progress: Optional hook called with the elapsed time at each
                progress mark (used for debug dumps)

        Returns:
            PollResult with SATISFIED or TIMED_OUT
        """
        start = self.clock()
        ticks = 0
        next_progress = progress_every

        while True:
            ticks += 1
            value = await self._tick(predicate, description)
            elapsed = self.clock() - start

            if value:
                logger.info(f"[{self.run_id}] {description}: satisfied after {elapsed:.0f}s ({ticks} tick(s))")
                return PollResult(PollOutcome.SATISFIED, elapsed, ticks, value, description)

            if elapsed >= timeout:
                logger.warning(f"[{self.run_id}] {description}: timed out after {elapsed:.0f}s ({ticks} tick(s))")
                return PollResult(PollOutcome.TIMED_OUT, elapsed, ticks, None, description)

            if progress_every > 0 and elapsed >= next_progress:
                logger.info(f"[{self.run_id}] Still waiting for {description} ({self._format_elapsed(elapsed)} elapsed)")
                if on_progress is not None:
                    try:
                        await on_progress(elapsed)
                    except Exception as e:
                        logger.debug(f"[{self.run_id}] Progress hook failed: {e}")
                while next_progress <= elapsed:
                    next_progress += progress_every

            await self.sleep(max(0.0, min(interval, timeout - elapsed)))

    async def hold(self, duration: float, description: str = "hold", progress_every: float = 60.0) -> None:
        """
        Wait a fixed duration, logging remaining time at the progress cadence.

        Used for the review window on the finished deck and the diagnostic
        window after a fatal failure.
        """
        if duration <= 0:
            return

        logger.info(f"[{self.run_id}] {description}: holding for {self._format_elapsed(duration)}")
        start = self.clock()
        step = progress_every if progress_every > 0 else duration

        while True:
            elapsed = self.clock() - start
            remaining = duration - elapsed
            if remaining <= 0:
                break
            await self.sleep(min(step, remaining))
            elapsed = self.clock() - start
            if 0 < duration - elapsed:
                logger.info(f"[{self.run_id}] {description}: {self._format_elapsed(duration - elapsed)} remaining")

        logger.info(f"[{self.run_id}] {description}: completed")

    @staticmethod
    def _format_elapsed(seconds: float) -> str:
        if seconds >= 60:
            return f"{int(seconds // 60)}m{int(seconds % 60):02d}s"
        return f"{seconds:.0f}s"
