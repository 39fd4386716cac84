"""Workflow orchestrator: prompt -> Open WebUI answer -> rendered Presenton deck.

A finite state machine. Each state runs one bounded step on a target platform
and the pure transition function in ``states`` picks the successor. Soft
timeouts advance the run; only the states listed in ``FATAL_ON_FAILURE`` can
end it early.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from loguru import logger

from deckrelay.analytics.metrics import RunMetrics
from deckrelay.browser.diagnostics import SnapshotRecorder, page_state
from deckrelay.browser.poller import StatePoller
from deckrelay.config.settings import Settings
from deckrelay.content.slides import PresentationData, format_for_presenton, parse_response_to_presentation
from deckrelay.errors import ExtractionFailed
from deckrelay.extraction.pipeline import ExtractedResponse
from deckrelay.platforms.openwebui_platform import OpenWebUIPlatform
from deckrelay.platforms.presenton_platform import PresentonPlatform, is_presentation_url
from deckrelay.workflow.states import (
    BRANCH_EXTRACT_ONLY,
    StepOutcome,
    StepStatus,
    WorkflowState,
    next_state,
)


# Guard against a transition cycle (CONTENT_FILL is the only self-loop)
MAX_TRANSITIONS = 50


PageFactory = Callable[[], Awaitable[Any]]


@dataclass
class WorkflowContext:
    """Mutable data shared by the steps of one run"""
    prompt: str
    extract_only: bool = False
    chat_page: Any = None
    deck_page: Any = None
    response: Optional[ExtractedResponse] = None
    presentation: Optional[PresentationData] = None
    knowledge_selected: bool = False
    last_outcome: Optional[StepOutcome] = None
    attempts: Dict[WorkflowState, int] = field(default_factory=lambda: defaultdict(int))
    history: List[Tuple[WorkflowState, StepOutcome]] = field(default_factory=list)


@dataclass
class WorkflowResult:
    """Terminal result of a run"""
    success: bool
    state: WorkflowState
    response: Optional[ExtractedResponse] = None
    presentation_url: Optional[str] = None
    snapshots: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class WorkflowOrchestrator:
    """Runs the two-stage workflow on pages supplied by ``page_factory``"""

    def __init__(
        self,
        page_factory: PageFactory,
        settings: Settings,
        run_id: Optional[str] = None,
        poller: Optional[StatePoller] = None,
        snapshots: Optional[SnapshotRecorder] = None,
        metrics: Optional[RunMetrics] = None,
        **platform_kwargs: Any,
    ):
        """
        Initialize orchestrator

        Args:
            page_factory: Coroutine function returning a new page
            settings: Runtime settings
            run_id: Correlation id (generated when omitted)
            poller: State poller (default: real clock)
            snapshots: Snapshot recorder (default: settings.snapshot_dir)
            metrics: Run metrics
            **platform_kwargs: Extra keyword arguments for both platforms
                (e.g. an injected ``sleep``)
        """
        self.run_id = run_id or str(uuid.uuid4())[:8]
        self.page_factory = page_factory
        self.settings = settings
        self.poller = poller or StatePoller(self.run_id)
        self.snapshots = snapshots or SnapshotRecorder(settings.snapshot_dir, run_id=self.run_id)
        self.metrics = metrics or RunMetrics(self.run_id, clock=self.poller.clock)

        self.openwebui = OpenWebUIPlatform(settings, self.poller, self.snapshots, self.run_id, **platform_kwargs)
        self.presenton = PresentonPlatform(settings, self.poller, self.snapshots, self.run_id, **platform_kwargs)

        self.handlers: Dict[WorkflowState, Callable[[WorkflowContext], Awaitable[StepOutcome]]] = {
            WorkflowState.INIT: self._init,
            WorkflowState.LOGIN_CHECK: self._login_check,
            WorkflowState.LOGIN: self._login,
            WorkflowState.SIGNUP_FALLBACK: self._signup,
            WorkflowState.KNOWLEDGE_SELECT: self._knowledge_select,
            WorkflowState.PROMPT_SUBMIT: self._prompt_submit,
            WorkflowState.RESPONSE_WAIT: self._response_wait,
            WorkflowState.RESPONSE_EXTRACT: self._response_extract,
            WorkflowState.UPLOAD_NAVIGATE: self._upload_navigate,
            WorkflowState.CONTENT_FILL: self._content_fill,
            WorkflowState.OUTLINE_WAIT: self._outline_wait,
            WorkflowState.TEMPLATE_SELECT_CHECK: self._template_select_check,
            WorkflowState.TEMPLATE_SELECT: self._template_select,
            WorkflowState.GENERATE_WAIT: self._generate_wait,
            WorkflowState.GENERATE_CLICK: self._generate_click,
            WorkflowState.PRESENTATION_REDIRECT_WAIT: self._presentation_redirect_wait,
            WorkflowState.RENDER_WAIT: self._render_wait,
            WorkflowState.REVIEW_HOLD: self._review_hold,
        }

    # =========================================================================
    # Run loop
    # =========================================================================

    async def run(self, prompt: str, extract_only: bool = False) -> WorkflowResult:
        """
        Produce a rendered presentation from a prompt.

        Args:
            prompt: Prompt sent to Open WebUI
            extract_only: Stop after the answer has been extracted

        Returns:
            WorkflowResult (never raises for workflow failures)
        """
        context = WorkflowContext(prompt=prompt, extract_only=extract_only)
        state = WorkflowState.INIT
        error: Optional[str] = None
        logger.info(f"[{self.run_id}] Starting LLM to presentation workflow")

        transitions = 0
        while not state.terminal:
            if transitions >= MAX_TRANSITIONS:
                error = f"exceeded {MAX_TRANSITIONS} transitions"
                state = WorkflowState.FAILED
                break
            transitions += 1

            context.attempts[state] += 1
            outcome = await self._run_state(state, context)
            context.history.append((state, outcome))
            context.last_outcome = outcome

            following = next_state(state, outcome)
            if following is WorkflowState.FAILED:
                error = f"{state.value}: {outcome.detail}"
                self.metrics.record_failure(state.value, self._component(state), outcome.detail, {"state": state.value})
            logger.debug(f"[{self.run_id}] {state.value} -> {following.value} ({outcome.status.value})")
            state = following

        if state is WorkflowState.FAILED:
            await self._on_failure(context, error)
        else:
            logger.success(f"[{self.run_id}] Automation completed successfully")

        self.metrics.record_snapshot(len(self.snapshots.paths))
        self.metrics.log_summary()
        deck_url = getattr(context.deck_page, "url", None)
        return WorkflowResult(
            success=state is WorkflowState.DONE,
            state=state,
            response=context.response,
            presentation_url=deck_url if deck_url and is_presentation_url(deck_url) else None,
            snapshots=list(self.snapshots.paths),
            metrics=self.metrics.get_summary(),
            error=error,
        )

    async def _run_state(self, state: WorkflowState, context: WorkflowContext) -> StepOutcome:
        logger.info(f"[{self.run_id}] >> {state.value}")
        started = self.poller.clock()

        try:
            outcome = await self.handlers[state](context)
        except ExtractionFailed as e:
            logger.error(f"[{self.run_id}] {e}")
            outcome = StepOutcome(StepStatus.FAILED, detail=str(e))
        except Exception as e:
            logger.error(f"[{self.run_id}] Step {state.value} raised: {e}")
            outcome = StepOutcome(StepStatus.FAILED, detail=f"{type(e).__name__}: {e}")

        elapsed = self.poller.clock() - started
        self.metrics.record_state(state.value, outcome.status.value, elapsed, outcome.detail)
        if outcome.status is StepStatus.TIMED_OUT:
            self.metrics.record_timeout(state.value, elapsed)
        return outcome

    @staticmethod
    def _component(state: WorkflowState) -> str:
        chat_states = {
            WorkflowState.INIT,
            WorkflowState.LOGIN_CHECK,
            WorkflowState.LOGIN,
            WorkflowState.SIGNUP_FALLBACK,
            WorkflowState.KNOWLEDGE_SELECT,
            WorkflowState.PROMPT_SUBMIT,
            WorkflowState.RESPONSE_WAIT,
            WorkflowState.RESPONSE_EXTRACT,
        }
        return "openwebui" if state in chat_states else "presenton"

    async def _on_failure(self, context: WorkflowContext, error: Optional[str]):
        logger.error(f"[{self.run_id}] Automation failed: {error}")
        page = context.deck_page or context.chat_page
        if page is None:
            return

        state = await page_state(page)
        logger.info(f"[{self.run_id}] Page at failure: {state}")
        await self.snapshots.capture(page, "workflow-failed")
        await self.poller.hold(self.settings.diagnostic_hold_seconds, "Diagnostic window")

    # =========================================================================
    # Open WebUI states
    # =========================================================================

    async def _init(self, context: WorkflowContext) -> StepOutcome:
        context.chat_page = await self.page_factory()
        return await self.openwebui.navigate(context.chat_page)

    async def _login_check(self, context: WorkflowContext) -> StepOutcome:
        return await self.openwebui.detect_login_state(context.chat_page)

    async def _login(self, context: WorkflowContext) -> StepOutcome:
        return await self.openwebui.login(context.chat_page)

    async def _signup(self, context: WorkflowContext) -> StepOutcome:
        return await self.openwebui.signup(context.chat_page)

    async def _knowledge_select(self, context: WorkflowContext) -> StepOutcome:
        outcome = await self.openwebui.select_knowledge(context.chat_page)
        context.knowledge_selected = outcome.ok
        return outcome

    async def _prompt_submit(self, context: WorkflowContext) -> StepOutcome:
        return await self.openwebui.submit_prompt(
            context.chat_page, context.prompt, append=context.knowledge_selected
        )

    async def _response_wait(self, context: WorkflowContext) -> StepOutcome:
        return await self.openwebui.wait_for_response(context.chat_page, context.prompt)

    async def _response_extract(self, context: WorkflowContext) -> StepOutcome:
        try:
            context.response = await self.openwebui.extract_response(context.chat_page, context.prompt)
        finally:
            if not context.extract_only:
                await self._close_chat_page(context)

        branch = BRANCH_EXTRACT_ONLY if context.extract_only else None
        return StepOutcome(StepStatus.SUCCESS, branch=branch, detail=context.response.strategy.value)

    async def _close_chat_page(self, context: WorkflowContext):
        # A failed extraction keeps the page for the diagnostic window
        if context.response is None or context.chat_page is None:
            return
        try:
            await context.chat_page.close()
        except Exception as e:
            logger.debug(f"[{self.run_id}] Closing chat page failed: {e}")
        context.chat_page = None

    # =========================================================================
    # Presenton states
    # =========================================================================

    async def _upload_navigate(self, context: WorkflowContext) -> StepOutcome:
        context.presentation = parse_response_to_presentation(context.response.text)
        logger.info(
            f"[{self.run_id}] Parsed response into '{context.presentation.title}' "
            f"with {len(context.presentation.slides)} slide(s)"
        )
        context.deck_page = await self.page_factory()
        return await self.presenton.open_upload(context.deck_page)

    async def _content_fill(self, context: WorkflowContext) -> StepOutcome:
        return await self.presenton.fill_content(
            context.deck_page,
            format_for_presenton(context.presentation),
            attempt=context.attempts[WorkflowState.CONTENT_FILL],
        )

    async def _outline_wait(self, context: WorkflowContext) -> StepOutcome:
        return await self.presenton.wait_for_outline(context.deck_page)

    async def _template_select_check(self, context: WorkflowContext) -> StepOutcome:
        return await self.presenton.check_template_selection(context.deck_page)

    async def _template_select(self, context: WorkflowContext) -> StepOutcome:
        found = context.last_outcome.element if context.last_outcome else None
        return await self.presenton.select_template(context.deck_page, found)

    async def _generate_wait(self, context: WorkflowContext) -> StepOutcome:
        return await self.presenton.wait_for_generate_button(context.deck_page)

    async def _generate_click(self, context: WorkflowContext) -> StepOutcome:
        ready = context.last_outcome.element if context.last_outcome and context.last_outcome.ok else None
        return await self.presenton.click_generate(context.deck_page, ready)

    async def _presentation_redirect_wait(self, context: WorkflowContext) -> StepOutcome:
        return await self.presenton.wait_for_redirect(context.deck_page)

    async def _render_wait(self, context: WorkflowContext) -> StepOutcome:
        return await self.presenton.wait_for_render(context.deck_page)

    async def _review_hold(self, context: WorkflowContext) -> StepOutcome:
        url = context.deck_page.url
        if not is_presentation_url(url):
            logger.info(f"[{self.run_id}] Not on a presentation page ({url}), skipping review hold")
            return StepOutcome(StepStatus.SKIPPED, detail=url)

        logger.info(f"[{self.run_id}] Presentation ready for review at {url}")
        await self.poller.hold(self.settings.review_hold_seconds, "Review window")
        return StepOutcome(StepStatus.SUCCESS, detail=url)
