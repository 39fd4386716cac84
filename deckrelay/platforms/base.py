"""Base target application - shared navigation and wait helpers

Each target application module owns its selector cascades, indicators and
completion predicates. The workflow orchestrator only sequences their steps.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from deckrelay.browser.diagnostics import SnapshotRecorder
from deckrelay.browser.poller import PollResult, StatePoller
from deckrelay.config.settings import Settings, WaitSpec
from deckrelay.errors import TransitionTimeout
from deckrelay.workflow.states import StepOutcome, StepStatus


class BasePlatform(ABC):
    """Abstract base class for the automated web applications"""

    def __init__(
        self,
        name: str,
        settings: Settings,
        poller: StatePoller,
        snapshots: SnapshotRecorder,
        run_id: str = "N/A",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize platform

        Args:
            name: Platform name identifier
            settings: Runtime settings (URLs, credentials, wait budgets)
            poller: Shared state poller
            snapshots: Diagnostic snapshot recorder
            run_id: Correlation id for logging
            sleep: Settle-wait function (injectable for tests)
        """
        self.name = name
        self.settings = settings
        self.waits = settings.waits
        self.poller = poller
        self.snapshots = snapshots
        self.run_id = run_id
        self.sleep = sleep
        logger.debug(f"[{run_id}] Initialized {name} platform")

    @property
    @abstractmethod
    def entry_url(self) -> str:
        """URL the platform's first step navigates to"""

    async def settle(self, seconds: Optional[float] = None):
        """Give UI animations time to finish between actions"""
        await self.sleep(self.waits.settle if seconds is None else seconds)

    async def navigate(self, page: Any, url: Optional[str] = None) -> StepOutcome:
        """
        Open the platform and wait for the network to go quiet.

        Args:
            page: Playwright page
            url: Override target (defaults to entry_url)

        Returns:
            SUCCESS outcome; navigation errors propagate
        """
        target = url or self.entry_url
        logger.info(f"[{self.run_id}] Opening {self.name} at {target}")
        await page.goto(target)
        await self.wait_for_network_idle(page)
        await self.settle(self.waits.page_load)
        return StepOutcome(StepStatus.SUCCESS, detail=page.url)

    async def wait_for_network_idle(self, page: Any, timeout_ms: int = 20000):
        try:
            await page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except Exception as e:
            logger.debug(f"[{self.run_id}] Network idle wait ended early: {e}")

    async def scroll_to_bottom(self, page: Any):
        try:
            await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
        except Exception as e:
            logger.debug(f"[{self.run_id}] Scroll failed: {e}")

    async def wait(
        self,
        predicate: Callable[[], Awaitable[Any]],
        budget: WaitSpec,
        description: str,
        on_progress: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> PollResult:
        """Poll ``predicate`` within the timeout and interval of ``budget``"""
        return await self.poller.poll_until(
            predicate,
            timeout=budget.timeout,
            interval=budget.interval,
            description=description,
            progress_every=budget.progress_every,
            on_progress=on_progress,
        )

    @staticmethod
    def outcome_from_poll(result: PollResult, branch: Optional[str] = None) -> StepOutcome:
        if result.satisfied:
            return StepOutcome(StepStatus.SUCCESS, branch=branch, element=result.value, detail=result.description)
        return StepOutcome(
            StepStatus.TIMED_OUT,
            branch=branch,
            detail=str(TransitionTimeout(result.description, result.elapsed)),
        )
