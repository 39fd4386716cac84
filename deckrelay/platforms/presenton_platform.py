"""Presenton platform implementation.

This module contains ALL Presenton-specific code:
- Upload page content input and submit cascades
- Outline -> template -> generate wizard indicators
- The bottom-of-page generate button fallback
- Rendering spinner and slide content indicators

Key difference from the chat stage:
- Every transition is slow (the generate button can take 15 minutes to enable)
- Presenton never auto-generates; the final button must be clicked
"""

from typing import Any, Dict, Optional, Tuple

from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from deckrelay.browser.cascade import (
    ElementDescriptor,
    ResolvedElement,
    act,
    build_cascade,
    click,
    fill,
    probe,
    resolve,
)
from deckrelay.browser.diagnostics import describe_buttons
from deckrelay.browser.visual_confirmation import click_with_confirmation, is_confirmed
from deckrelay.errors import ActionRejected, ElementNotFound
from deckrelay.workflow.states import BRANCH_RETRY, BRANCH_TEMPLATES, StepOutcome, StepStatus

from .base import BasePlatform


# =============================================================================
# PRESENTON URL PATTERNS
# =============================================================================

OUTLINE_URL_PATTERN = "/outline"
UPLOAD_URL_PATTERN = "/upload"

# The finished deck lives on one of these
PRESENTATION_URL_PATTERNS = ["/presentation", "/slides", "/view"]

# Rendering is over once the page moved to any of these (and no spinner shows)
RENDERED_URL_PATTERNS = PRESENTATION_URL_PATTERNS + ["/final", "/display"]

DEFAULT_TEMPLATE = "General"

# Max clicks on a template card before giving up on visual confirmation
TEMPLATE_CONFIRM_ATTEMPTS = 3

# A bottom-of-page fallback button must sit this close to the end of the page
BOTTOM_BUTTON_DISTANCE = 400


# =============================================================================
# PRESENTON UPLOAD PAGE
# =============================================================================

CREATE_ENTRY = build_cascade("create_entry", [
    'button:has-text("Create")',
    'button:has-text("Generate")',
    'button:has-text("New")',
    'button:has-text("Start")',
    '.create-btn',
    '.generate-btn',
])

CONTENT_INPUT = build_cascade("content_input", [
    'textarea[placeholder*="content"]',
    'textarea',
    '.content-input',
    '.text-input',
    '[contenteditable="true"]',
    'input[placeholder*="text"]',
    'input[type="text"]',
])

# Buttons that reveal a text input on upload pages that start in file mode
CONTENT_OPENERS = build_cascade("content_openers", [
    'button:has-text("Add Text")',
    'button:has-text("Paste Content")',
    'button:has-text("Input")',
    '.add-content',
    '.text-option',
])

CONTENT_SUBMIT = build_cascade("content_submit", [
    'button:has-text("Generate")',
    'button:has-text("Create")',
    'button:has-text("Build")',
    'button:has-text("Make")',
    'button:has-text("Process")',
    'button:has-text("Convert")',
    'button:has-text("Transform")',
    'button:has-text("Submit")',
    'button:has-text("Next")',
    'button[type="submit"]',
    '.generate-btn',
    '.create-btn',
    '.submit-btn',
    'button[aria-label*="Generate"]',
    'button[aria-label*="Create"]',
    'button[aria-label*="Next"]',
])


# =============================================================================
# PRESENTON OUTLINE PAGE
# =============================================================================

# The bottom button reads "Loading..." (disabled) until the outline is done
LOADING_BUTTON = build_cascade("loading_button", [
    ElementDescriptor('button', text_contains=("loading",), require_enabled=False),
])

SELECT_TEMPLATE_TRIGGER = build_cascade("select_template_trigger", [
    ElementDescriptor('button', text_contains=("select", "template")),
    ElementDescriptor('button', text_contains=("choose", "template")),
    ElementDescriptor('button', text_contains=("pick", "template")),
])


def _picker_descriptors(template: str):
    return [
        ElementDescriptor('[data-template]', text_contains=(template,), require_enabled=False),
        ElementDescriptor('.template-option', text_contains=(template,), require_enabled=False),
        ElementDescriptor('.template-card', text_contains=(template,), require_enabled=False),
        ElementDescriptor('[role="radio"]', text_contains=(template,), require_enabled=False),
        ElementDescriptor('[role="option"]', text_contains=(template,), require_enabled=False),
        ElementDescriptor('div[class*="template"]', text_contains=(template,), require_enabled=False),
    ]


def template_card_cascade(template: str = DEFAULT_TEMPLATE):
    """Template picker cards only; outline text mentioning the template never matches"""
    return build_cascade(f"template_card[{template}]", _picker_descriptors(template))


def template_option_cascade(template: str = DEFAULT_TEMPLATE):
    """Clickable cards/entries for one template, used once the picker is open"""
    return build_cascade(f"template_option[{template}]", _picker_descriptors(template) + [
        ElementDescriptor('button', text_contains=(template,)),
        ElementDescriptor('div', text_contains=(template,), require_enabled=False),
    ])


GENERATE_PRESENTATION = build_cascade("generate_presentation", [
    ElementDescriptor('button', text_contains=("generate", "presentation")),
    ElementDescriptor('button', text_contains=("create", "presentation")),
    ElementDescriptor('button', text_contains=("build", "presentation")),
])

# Used only when the wait above never saw an enabled generate button
FINAL_GENERATE = build_cascade("final_generate", [
    'button:has-text("Generate Presentation")',
    'button:has-text("Create Presentation")',
    'button:has-text("Build Presentation")',
    'button:has-text("Generate")',
    'button:has-text("Create")',
    'button:has-text("Continue")',
    'button:has-text("Next")',
    'button:has-text("Proceed")',
    'button[type="submit"]',
])

_BOTTOM_BUTTONS_JS = """
(maxDistance) => {
    window.scrollTo(0, document.body.scrollHeight);
    const pageHeight = document.body.scrollHeight;
    return Array.from(document.querySelectorAll('button'))
        .map((btn, index) => {
            const rect = btn.getBoundingClientRect();
            return {
                index,
                text: (btn.textContent || '').trim(),
                enabled: !btn.disabled,
                visible: btn.offsetParent !== null,
                distanceFromBottom: pageHeight - (rect.top + window.scrollY),
            };
        })
        .filter(btn => btn.visible && btn.enabled && btn.text.length > 0 && btn.distanceFromBottom <= maxDistance)
        .sort((a, b) => a.distanceFromBottom - b.distanceFromBottom);
}
"""


# =============================================================================
# PRESENTON PRESENTATION PAGE
# =============================================================================

SPINNERS = build_cascade("spinners", [
    '.spinner',
    '.loading',
    '.loading-spinner',
    '.loader',
    '.loading-indicator',
    '.progress-spinner',
    '.circular-progress',
    '.rotating',
    '.spin',
    '[data-loading="true"]',
    '[aria-label*="loading" i]',
    'svg[class*="spin"]',
    'div[class*="spin"]',
    '.fa-spinner',
    '.fa-circle-notch',
    '.MuiCircularProgress-root',
    '.ant-spin',
    '.chakra-spinner',
], require_enabled=False)

SLIDE_CONTENT = build_cascade("slide_content", [
    '.slide',
    '.presentation-slide',
    '[data-slide]',
    '.slide-content',
    '.rendered-slide',
    '.ppt-slide',
    '.slideshow-slide',
])


def is_presentation_url(url: str) -> bool:
    return any(pattern in (url or "") for pattern in PRESENTATION_URL_PATTERNS)


def is_rendered_url(url: str) -> bool:
    return any(pattern in (url or "") for pattern in RENDERED_URL_PATTERNS)


def is_presentation_redirect(url: str) -> bool:
    return "/presentation" in (url or "") and "id=" in (url or "")


def _short_text(element: ResolvedElement) -> bool:
    # Long text blocks are page sections containing the template, not the card
    return 0 < len(element.text) < 100


async def _scroll_and_click(handle: Any):
    await handle.scroll_into_view_if_needed()
    await handle.click(timeout=5000)


# =============================================================================
# PRESENTON PLATFORM
# =============================================================================

class PresentonPlatform(BasePlatform):
    """Creation stage: paste the deck text and drive the wizard to a rendered deck"""

    def __init__(self, settings, poller, snapshots, run_id: str = "N/A", template: str = DEFAULT_TEMPLATE, **kwargs):
        super().__init__("presenton", settings, poller, snapshots, run_id, **kwargs)
        self.template = template
        self.template_cards = template_card_cascade(template)
        self.template_options = template_option_cascade(template)

    @property
    def entry_url(self) -> str:
        return self.settings.presenton_upload_url

    # -------------------------------------------------------------------------
    # Upload page
    # -------------------------------------------------------------------------

    async def open_upload(self, page: Any) -> StepOutcome:
        """Navigate to the upload page, going through the main page's create button if redirected"""
        outcome = await self.navigate(page)
        logger.info(f"[{self.run_id}] Current page: {await page.title()} at {page.url}")

        if UPLOAD_URL_PATTERN not in page.url:
            logger.info(f"[{self.run_id}] Detected Presenton main interface")
            entry = await click(CREATE_ENTRY, page, attempts=self.settings.action_attempts)
            if entry is not None:
                logger.info(f"[{self.run_id}] Opened content input via {entry.label}")
                await self.settle(2.0)
        return outcome

    async def fill_content(self, page: Any, text: str, attempt: int = 1) -> StepOutcome:
        """
        Paste the deck text and submit it.

        Args:
            page: Playwright page
            text: Formatted deck text
            attempt: 1-based attempt number for this state

        Returns:
            SUCCESS when the text was filled; a RETRY branch when an input
            had to be revealed first; SKIPPED when no input exists at all
        """
        attempts = self.settings.action_attempts
        filled = await fill(CONTENT_INPUT, page, text, attempts=attempts)

        if filled is None:
            if attempt == 1:
                opener = await click(CONTENT_OPENERS, page, attempts=attempts)
                if opener is not None:
                    logger.info(f"[{self.run_id}] Revealed content input via {opener.label}, retrying")
                    await self.settle(2.0)
                    return StepOutcome(StepStatus.SKIPPED, branch=BRANCH_RETRY, detail=opener.label)
            logger.warning(f"[{self.run_id}] No suitable input field found on the upload page")
        else:
            logger.success(f"[{self.run_id}] Filled presentation content via {filled.label}")
            await self.settle(2.0)

        submitted = await click(CONTENT_SUBMIT, page, attempts=attempts)
        if submitted is not None:
            logger.info(f"[{self.run_id}] Submitted content via {submitted.label}")
            await self.settle(3.0)
        else:
            logger.warning(f"[{self.run_id}] No generate button found on the upload page")

        if filled is None:
            return StepOutcome(StepStatus.SKIPPED, detail="content input not found")
        return StepOutcome(StepStatus.SUCCESS, element=submitted, detail=filled.label)

    # -------------------------------------------------------------------------
    # Outline page
    # -------------------------------------------------------------------------

    async def wait_for_outline(self, page: Any) -> StepOutcome:
        logger.info(f"[{self.run_id}] Waiting for outline generation...")
        await self.settle(3.0)

        async def on_outline():
            return page.url if OUTLINE_URL_PATTERN in page.url else None

        result = await self.wait(on_outline, self.waits.outline, "outline page")
        if not result.satisfied:
            logger.warning(f"[{self.run_id}] Outline page not detected, but continuing")
        return self.outcome_from_poll(result)

    async def _template_stage(self, page: Any) -> Optional[ResolvedElement]:
        await self.scroll_to_bottom(page)
        if await resolve(LOADING_BUTTON, page) is not None:
            return None
        for cascade in (SELECT_TEMPLATE_TRIGGER, GENERATE_PRESENTATION):
            found = await resolve(cascade, page)
            if found is not None:
                return found
        return await resolve(self.template_cards, page, where=_short_text)

    async def check_template_selection(self, page: Any) -> StepOutcome:
        """
        Wait for the outline page's bottom button to leave its "Loading..." state.

        Nothing counts while a visible "Loading" button remains. Branches to
        template selection when the "Select a Template" button or picker cards
        appear; skips it when the generate button is already there or nothing
        showed up in time.
        """
        logger.info(f"[{self.run_id}] Checking if template selection is available...")
        result = await self.wait(
            lambda: self._template_stage(page),
            self.waits.template_trigger,
            "template selection or generate button",
        )

        if not result.satisfied:
            await self.snapshots.capture(page, "template-button-timeout")
            return self.outcome_from_poll(result)

        found = result.value
        if found.cascade_name == GENERATE_PRESENTATION.name:
            logger.info(f"[{self.run_id}] No template selection needed, generate button present")
            return StepOutcome(StepStatus.SKIPPED, element=found, detail=found.label)

        logger.info(f"[{self.run_id}] Template selection available ({found.label})")
        return StepOutcome(StepStatus.SUCCESS, branch=BRANCH_TEMPLATES, element=found, detail=found.label)

    async def select_template(self, page: Any, found: Optional[ResolvedElement] = None) -> StepOutcome:
        """
        Open the template picker if needed and click the template until it shows as selected.

        Args:
            page: Playwright page
            found: Element observed by the template check (trigger button or card)
        """
        attempts = self.settings.action_attempts
        if found is None or found.cascade_name == SELECT_TEMPLATE_TRIGGER.name:
            trigger = await click(SELECT_TEMPLATE_TRIGGER, page, first=found, attempts=attempts)
            if trigger is not None:
                logger.info(f"[{self.run_id}] Clicked '{trigger.text}' button")
                await self.settle(3.0)

        result = await self.wait(
            lambda: resolve(self.template_options, page, where=_short_text),
            self.waits.template_options,
            f"'{self.template}' template option",
        )
        if not result.satisfied:
            logger.info(f"[{self.run_id}] No template options found - skipping template selection")
            return StepOutcome(StepStatus.SKIPPED, detail="no template options")

        await self.snapshots.capture(page, "before-template-selection")
        option = result.value
        logger.info(f"[{self.run_id}] Selecting '{self.template}' template via {option.label}")

        confirmation = await click_with_confirmation(
            click=lambda: option.handle.click(timeout=5000),
            confirm=lambda: is_confirmed(option, self.run_id),
            attempts=TEMPLATE_CONFIRM_ATTEMPTS,
            settle=self.waits.settle,
            sleep=self.sleep,
            run_id=self.run_id,
        )
        if confirmation.confirmed:
            logger.success(f"[{self.run_id}] '{self.template}' template selected (click {confirmation.attempts})")
            return StepOutcome(StepStatus.SUCCESS, element=option, detail=option.label)

        logger.warning(f"[{self.run_id}] Template selection not visually confirmed after {confirmation.attempts} click(s), continuing")
        return StepOutcome(StepStatus.TIMED_OUT, element=option, detail="template selection unconfirmed")

    # -------------------------------------------------------------------------
    # Generate
    # -------------------------------------------------------------------------

    async def _generate_progress(self, page: Any, elapsed: float):
        buttons = await describe_buttons(page)
        texts = [b.get("text", "") for b in buttons]
        if any("loading" in text.lower() for text in texts):
            status = 'still showing "Loading..." button'
        elif any("presentation" in text.lower() for text in texts):
            status = "generate button present but disabled"
        else:
            status = "no relevant buttons found yet"
        logger.info(f"[{self.run_id}] Generate button status: {status}")
        logger.debug(f"[{self.run_id}] Current buttons: {buttons[:6]}")

    async def wait_for_generate_button(self, page: Any) -> StepOutcome:
        """Wait (up to ~15 minutes) for an enabled "Generate Presentation" button"""
        logger.info(f"[{self.run_id}] Waiting for 'Generate Presentation' button to become enabled (can take several minutes)...")
        result = await self.wait(
            lambda: resolve(GENERATE_PRESENTATION, page),
            self.waits.generate_button,
            "'Generate Presentation' button",
            on_progress=lambda elapsed: self._generate_progress(page, elapsed),
        )
        await self.snapshots.capture(page, "generate-button-ready" if result.satisfied else "generate-button-timeout")
        return self.outcome_from_poll(result)

    async def _bottom_button_index(self, page: Any) -> Optional[Dict[str, Any]]:
        try:
            candidates = await page.evaluate(_BOTTOM_BUTTONS_JS, BOTTOM_BUTTON_DISTANCE)
        except Exception as e:
            logger.debug(f"[{self.run_id}] Bottom button scan failed: {e}")
            return None
        logger.debug(f"[{self.run_id}] Bottom buttons found: {candidates}")
        return candidates[0] if candidates else None

    async def _click_bottom_button(self, page: Any, attempts: int) -> Tuple[Optional[Dict[str, Any]], bool]:
        """
        Click the enabled button closest to the page bottom, rescanning after a rejected click.

        Returns:
            (candidate, clicked): candidate is None when the scan found nothing
        """
        bottom = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max(1, attempts)),
                wait=wait_fixed(self.waits.settle),
                retry=retry_if_exception_type(ActionRejected),
                sleep=self.sleep,
                reraise=True,
            ):
                with attempt:
                    bottom = await self._bottom_button_index(page)
                    if bottom is None:
                        return None, False
                    logger.info(f"[{self.run_id}] Attempting to click closest bottom button: '{bottom.get('text')}'")
                    try:
                        await _scroll_and_click(page.locator("button").nth(bottom["index"]))
                    except Exception as e:
                        raise ActionRejected("click", f"bottom button '{bottom.get('text')}'", e) from e
                    return bottom, True
        except ActionRejected as e:
            logger.warning(f"[{self.run_id}] Giving up on bottom button after {attempts} attempt(s) - {e}")
        return bottom, False

    async def click_generate(self, page: Any, ready: Optional[ResolvedElement] = None) -> StepOutcome:
        """
        Click the final generate button.

        Tries the element found by the wait first, then the generic generate
        cascade, then the enabled button closest to the bottom of the page.
        FAILED only when none of them exists.
        """
        attempts = self.settings.action_attempts
        await self.scroll_to_bottom(page)

        if ready is not None:
            clicked = await act(GENERATE_PRESENTATION, page, _scroll_and_click, first=ready, attempts=attempts)
            if clicked is not None:
                logger.success(f"[{self.run_id}] Clicked '{clicked.text}' button")
                await self.settle(3.0)
                return StepOutcome(StepStatus.SUCCESS, branch="primary", element=clicked, detail=clicked.label)

        clicked = await act(FINAL_GENERATE, page, _scroll_and_click, attempts=attempts, where=lambda r: bool(r.text))
        if clicked is not None:
            logger.info(f"[{self.run_id}] Clicked fallback generate button '{clicked.text}'")
            await self.settle(3.0)
            return StepOutcome(StepStatus.SUCCESS, branch="fallback", element=clicked, detail=clicked.label)

        bottom, bottom_clicked = await self._click_bottom_button(page, attempts)
        if bottom_clicked:
            await self.settle(3.0)
            return StepOutcome(StepStatus.SUCCESS, branch="bottom", detail=bottom.get("text", ""))

        if bottom is not None:
            # A candidate exists but kept rejecting the click; the redirect wait decides
            await self.snapshots.capture(page, "generate-button-rejected")
            return StepOutcome(StepStatus.TIMED_OUT, branch="bottom", detail=f"bottom button '{bottom.get('text')}' rejected every click")

        await self.snapshots.capture(page, "generate-button-not-found")
        return StepOutcome(StepStatus.FAILED, detail=str(ElementNotFound(FINAL_GENERATE.name)))

    # -------------------------------------------------------------------------
    # Presentation page
    # -------------------------------------------------------------------------

    async def wait_for_redirect(self, page: Any) -> StepOutcome:
        async def on_presentation():
            return page.url if is_presentation_redirect(page.url) else None

        result = await self.wait(on_presentation, self.waits.presentation_redirect, "redirect to presentation page")
        if result.satisfied:
            logger.success(f"[{self.run_id}] Redirected to presentation page: {result.value}")
            await self.settle(3.0)
        else:
            logger.warning(f"[{self.run_id}] Redirect to presentation page timed out - current URL: {page.url}")
        return self.outcome_from_poll(result)

    async def rendering_complete(self, page: Any) -> Optional[str]:
        """Truthy once no spinner is visible and the deck (URL or slides) is present"""
        spinner = await resolve(SPINNERS, page)
        if spinner is not None:
            return None
        if is_rendered_url(page.url):
            return f"presentation url {page.url}"
        slides = await probe(SLIDE_CONTENT, page)
        if slides is not None:
            return f"slide content ({slides.label})"
        return None

    async def wait_for_render(self, page: Any) -> StepOutcome:
        """Wait for the rendering spinner to disappear on the presentation page"""
        if "/presentation" not in page.url:
            logger.warning(f"[{self.run_id}] Not on presentation page when waiting for spinner: {page.url}")

        result = await self.wait(lambda: self.rendering_complete(page), self.waits.render, "presentation rendering")
        if result.satisfied:
            logger.success(f"[{self.run_id}] Presentation rendering appears complete ({result.value})")
        else:
            logger.warning(f"[{self.run_id}] Spinner wait timed out - presentation may still be rendering")

        await self.snapshots.capture(page, "completed-presentation")
        await self._log_slide_count(page)
        return self.outcome_from_poll(result)

    async def _log_slide_count(self, page: Any):
        for descriptor in SLIDE_CONTENT.ordered():
            try:
                count = await page.locator(descriptor.selector).count()
            except Exception as e:
                logger.debug(f"[{self.run_id}] Slide count for {descriptor.selector} failed: {e}")
                continue
            if count > 0:
                logger.info(f"[{self.run_id}] Found {count} slide element(s) via {descriptor.selector}")
                return
        logger.info(f"[{self.run_id}] No slide elements detected on final page")
