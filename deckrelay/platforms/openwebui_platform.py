"""Open WebUI platform implementation.

This module contains ALL Open WebUI-specific code:
- Chat/login/signup indicators and input cascades
- Knowledge tag selection through the "#" picker
- The "follow-up suggestions appeared" response completion heuristic
- Response extraction cascades and page chrome strings

Another chat UI can be supported by providing the same steps with its own
cascades and completion predicate.
"""

from typing import Any, Optional

from loguru import logger

from deckrelay.browser.cascade import (
    ElementDescriptor,
    build_cascade,
    click,
    fill,
    probe,
    resolve,
)
from deckrelay.browser.diagnostics import describe_buttons, describe_inputs
from deckrelay.errors import ElementNotFound
from deckrelay.extraction.pipeline import ExtractedResponse, ResponsePipeline
from deckrelay.workflow.states import (
    BRANCH_CHAT,
    BRANCH_LOGIN,
    BRANCH_SIGNUP,
    BRANCH_UNKNOWN,
    StepOutcome,
    StepStatus,
)

from .base import BasePlatform


# =============================================================================
# OPEN WEBUI PAGE STATE INDICATORS
# =============================================================================

LOGIN_URL_PATTERNS = ["/auth", "/login", "/signin"]

CHAT_INDICATORS = build_cascade("chat_indicators", [
    'textarea[placeholder*="Send a message"]',
    'textarea[placeholder*="Ask"]',
    'input[type="text"][placeholder*="message"]',
    'textarea[placeholder*="Type"]',
    'textarea[placeholder*="Enter"]',
    'textarea[placeholder*="message"]',
    '#chat-input',
    '.chat-input',
    '.message-input',
    'textarea.w-full',
    'textarea[rows]',
    'div[contenteditable="true"]',
])

LOGIN_INDICATORS = build_cascade("login_indicators", [
    'input[type="email"]',
    'input[type="password"]',
    'button:has-text("Sign in")',
    'form[action*="login"]',
    '.login-form',
    '#login-form',
    'text=Sign in',
    'text=Login',
])

LOGIN_SUCCESS_INDICATORS = build_cascade("login_success", [
    'textarea[placeholder*="Send"]',
    'textarea[placeholder*="Ask"]',
    'textarea[placeholder*="message"]',
    '#chat-input',
    '.chat-interface',
    '.dashboard',
    '.main-content',
])

LOGIN_ERROR_SELECTORS = ['.error', '.alert-error', '[role="alert"]', '.login-error', '.error-message']

# Response generation in progress
GENERATING_INDICATORS = build_cascade("generating_indicators", [
    '.loading',
    '.spinner',
    '.generating',
    '[data-testid="loading"]',
    '.message.generating',
    '.response.generating',
    '.animate-pulse',
    '.animate-spin',
])

# Open WebUI shows follow-up suggestions only once the answer is complete
FOLLOW_UP_INDICATORS = build_cascade("follow_up_indicators", [
    '[data-testid="followup"]',
    '.followup',
    '.follow-up',
    '.suggested-questions',
    '.follow-up-questions',
    '.suggestions',
    'button[class*="follow"]',
    'button[class*="suggest"]',
    '.message + .suggestions',
    '.response + .follow-up',
    'div:has-text("Follow up")',
    'div:has-text("Suggested")',
])

FOLLOW_UP_WORDS = ["follow", "suggest", "question"]


# =============================================================================
# OPEN WEBUI INPUT CASCADES
# =============================================================================

CHAT_INPUT = build_cascade("chat_input", [
    'textarea[placeholder*="Send a message"]',
    'textarea[placeholder*="Ask"]',
    'input[type="text"][placeholder*="message"]',
    'textarea[placeholder*="Type"]',
    'textarea[placeholder*="Enter"]',
    'textarea[placeholder*="message"]',
    '.chat-input textarea',
    '.message-input textarea',
    '#chat-input',
    'textarea:not([placeholder*="search"]):not([placeholder*="Search"])',
    'input[type="text"]:not([placeholder*="search"]):not([placeholder*="Search"])',
    'textarea.w-full',
    'textarea[rows]',
    'div[contenteditable="true"]',
])

SEND_BUTTON = build_cascade("send_button", [
    '#send-message-button',
    'button[type="submit"]',
    'button[aria-label*="Send"]',
    'button:has-text("Send")',
    'button[title*="Send"]',
    '.send-button',
])

EMAIL_INPUT = build_cascade("email_input", [
    'input[type="email"]',
    'input[name="email"]',
    'input[name="username"]',
    'input[placeholder*="email" i]',
    'input[placeholder*="username" i]',
    '#email',
    '#username',
    '.email-input',
    '.username-input',
])

PASSWORD_INPUT = build_cascade("password_input", [
    'input[type="password"]',
    'input[name="password"]',
    '#password',
    '.password-input',
])

LOGIN_BUTTON = build_cascade("login_button", [
    'button[type="submit"]',
    'button:has-text("Sign in")',
    'button:has-text("Login")',
    'button:has-text("LOG IN")',
    'input[type="submit"]',
    '.login-button',
    '.signin-button',
    '.btn-login',
    '#login-button',
    '#signin-button',
])

SIGNUP_LINK = build_cascade("signup_link", [
    'button:has-text("Sign up")',
    'a:has-text("Sign up")',
    'button:has-text("Create account")',
    'a:has-text("Create account")',
    'button:has-text("Register")',
])

SIGNUP_NAME_INPUT = build_cascade("signup_name", [
    'input[name="name"]',
    'input[autocomplete="name"]',
    'input[placeholder*="name" i]',
])

SIGNUP_SUBMIT = build_cascade("signup_submit", [
    'button[type="submit"]',
    'button:has-text("Sign up")',
    'button:has-text("Create")',
])

# Account created when no credentials are configured
SIGNUP_NAME = "Deck Relay"
SIGNUP_EMAIL = "test@example.com"
SIGNUP_PASSWORD = "password123"


def knowledge_option_cascade(tag: str):
    """Dropdown entries for a knowledge tag, as rendered by the "#" picker"""
    return build_cascade(f"knowledge_option[{tag}]", [
        ElementDescriptor(f'[data-value*="{tag}" i]', require_enabled=False),
        ElementDescriptor('[role="option"]', text_contains=(tag,), require_enabled=False),
        ElementDescriptor('[role="menuitem"]', text_contains=(tag,), require_enabled=False),
        ElementDescriptor('li', text_contains=(tag,), require_enabled=False),
        ElementDescriptor('button', text_contains=(tag,)),
        ElementDescriptor('span', text_contains=(tag,), require_enabled=False),
        ElementDescriptor('div', text_contains=(tag,), require_enabled=False),
    ])


# =============================================================================
# OPEN WEBUI RESPONSE EXTRACTION
# =============================================================================

RESPONSE_CONTENT = build_cascade("response_content", [
    '[data-testid="message"]:last-child .content',
    '.message:last-child .content',
    '.chat-message:last-child .text',
    '.assistant-message:last-child',
    '.response:last-child',
    '.message-content:last-child',
    '.prose:last-child',
    '.markdown:last-child',
    '.message:last-child .prose',
    '.message:last-child .markdown',
    'div[data-message-id]:last-child .prose',
], require_enabled=False)

MESSAGE_CONTAINERS = [
    '.message',
    '[data-testid="message"]',
    '.chat-message',
    '.prose',
]

# Lines containing these are UI, not answer text
PAGE_CHROME_STRINGS = [
    "send a message",
    "sign in",
    "type a message",
    "enter a message",
    "how can i help you today",
    "message open webui",
]


def is_login_url(url: str) -> bool:
    return any(pattern in (url or "") for pattern in LOGIN_URL_PATTERNS)


def build_response_pipeline(run_id: str = "N/A") -> ResponsePipeline:
    return ResponsePipeline(
        content_cascade=RESPONSE_CONTENT,
        container_selectors=MESSAGE_CONTAINERS,
        chrome_strings=PAGE_CHROME_STRINGS,
        run_id=run_id,
    )


async def generation_started(page: Any) -> Optional[str]:
    """Truthy once a generation indicator (or an already finished answer) shows"""
    generating = await probe(GENERATING_INDICATORS, page)
    if generating is not None:
        return f"generating ({generating.label})"
    follow_up = await probe(FOLLOW_UP_INDICATORS, page)
    if follow_up is not None:
        return f"already finished ({follow_up.label})"
    return None


async def response_complete(page: Any, prompt: str = "") -> Optional[str]:
    """
    Open WebUI completion heuristic.

    Returns a truthy reason once follow-up suggestions are shown, or once no
    generation indicator remains and the page text mentions follow-ups. The
    submitted prompt is removed from the page text first, so words in the
    question itself never count.
    """
    follow_up = await probe(FOLLOW_UP_INDICATORS, page)
    if follow_up is not None:
        return f"follow-up suggestions ({follow_up.label})"

    if await probe(GENERATING_INDICATORS, page) is not None:
        return None

    page_text = await page.evaluate("() => (document.body.textContent || '').toLowerCase()") or ""
    if prompt:
        page_text = page_text.replace(prompt.strip().lower(), " ")
    if any(word in page_text for word in FOLLOW_UP_WORDS):
        return "follow-up content in page text"
    return None


# =============================================================================
# OPEN WEBUI PLATFORM
# =============================================================================

class OpenWebUIPlatform(BasePlatform):
    """Chat stage: log in, submit the prompt, wait for and extract the answer"""

    def __init__(self, settings, poller, snapshots, run_id: str = "N/A", **kwargs):
        super().__init__("openwebui", settings, poller, snapshots, run_id, **kwargs)
        self.pipeline = build_response_pipeline(run_id)

    @property
    def entry_url(self) -> str:
        return self.settings.openwebui_url

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    async def _page_branch(self, page: Any) -> Optional[str]:
        if await probe(CHAT_INDICATORS, page) is not None:
            return BRANCH_CHAT
        if is_login_url(page.url):
            return BRANCH_LOGIN
        return None

    def _login_or_signup(self) -> str:
        if self.settings.has_credentials:
            return BRANCH_LOGIN
        logger.warning(f"[{self.run_id}] Login required but no credentials configured, trying signup")
        return BRANCH_SIGNUP

    async def detect_login_state(self, page: Any) -> StepOutcome:
        """
        Decide whether the chat is usable, a login is needed, or neither is clear.

        Chat indicators take precedence over login indicators.
        """
        logger.info(f"[{self.run_id}] Checking page state for login requirements (url: {page.url})")
        result = await self.wait(lambda: self._page_branch(page), self.waits.chat_ready, "chat interface")

        if result.satisfied:
            if result.value == BRANCH_CHAT:
                logger.info(f"[{self.run_id}] Chat interface detected, proceeding without login")
                return StepOutcome(StepStatus.SUCCESS, branch=BRANCH_CHAT)
            logger.info(f"[{self.run_id}] Login URL pattern detected")
            return StepOutcome(StepStatus.SUCCESS, branch=self._login_or_signup())

        login = await probe(LOGIN_INDICATORS, page)
        if login is not None:
            logger.info(f"[{self.run_id}] Login element found: {login.label}")
            return StepOutcome(StepStatus.SUCCESS, branch=self._login_or_signup())

        logger.warning(f"[{self.run_id}] No clear login or chat indicators found, attempting to continue")
        await self.snapshots.capture(page, "login-state-unclear")
        return StepOutcome(StepStatus.TIMED_OUT, branch=BRANCH_UNKNOWN, detail="page state unclear")

    async def _log_login_errors(self, page: Any):
        for selector in LOGIN_ERROR_SELECTORS:
            try:
                errors = page.locator(selector)
                if await errors.count() > 0:
                    logger.warning(f"[{self.run_id}] Login error: {await errors.first.text_content()}")
            except Exception as e:
                logger.debug(f"[{self.run_id}] Could not read login error {selector}: {e}")

    async def _login_succeeded(self, page: Any) -> Optional[str]:
        success = await probe(LOGIN_SUCCESS_INDICATORS, page)
        if success is not None:
            return success.label
        if await probe(PASSWORD_INPUT, page) is None:
            return "login form gone"
        return None

    async def login(self, page: Any) -> StepOutcome:
        """Fill credentials, submit and wait for the chat to appear"""
        logger.info(f"[{self.run_id}] Attempting login with provided credentials...")
        attempts = self.settings.action_attempts
        await self.settle()

        if await fill(EMAIL_INPUT, page, self.settings.username, attempts=attempts) is None:
            logger.warning(f"[{self.run_id}] No email field found")
        if await fill(PASSWORD_INPUT, page, self.settings.password, attempts=attempts) is None:
            logger.warning(f"[{self.run_id}] No password field found")

        await self.settle()
        if await click(LOGIN_BUTTON, page, attempts=attempts) is None:
            logger.info(f"[{self.run_id}] No clickable login button found, pressing Enter")
            await page.keyboard.press("Enter")

        await self.wait_for_network_idle(page)
        result = await self.wait(lambda: self._login_succeeded(page), self.waits.login_complete, "login completion")
        if result.satisfied:
            logger.success(f"[{self.run_id}] Login successful ({result.value})")
        else:
            logger.warning(f"[{self.run_id}] Still on login page - login may have failed")
            await self._log_login_errors(page)
        return self.outcome_from_poll(result)

    async def signup(self, page: Any) -> StepOutcome:
        """Create a throwaway account when login is required but no credentials exist"""
        attempts = self.settings.action_attempts
        if await click(SIGNUP_LINK, page, attempts=attempts) is None:
            logger.warning(f"[{self.run_id}] No signup option found")
            return StepOutcome(StepStatus.SKIPPED, detail="no signup option")

        logger.info(f"[{self.run_id}] Found signup option, attempting to create account...")
        await self.settle(2.0)

        await fill(SIGNUP_NAME_INPUT, page, SIGNUP_NAME, attempts=1)
        await fill(EMAIL_INPUT, page, SIGNUP_EMAIL, attempts=attempts)

        # Password and confirmation share the same selector
        passwords = page.locator('input[type="password"]')
        for index in range(min(await passwords.count(), 2)):
            await passwords.nth(index).fill(SIGNUP_PASSWORD)

        if await click(SIGNUP_SUBMIT, page, attempts=attempts) is None:
            return StepOutcome(StepStatus.SKIPPED, detail="no signup submit button")

        await self.wait_for_network_idle(page)
        logger.info(f"[{self.run_id}] Signup attempted with test credentials")
        return StepOutcome(StepStatus.SUCCESS)

    # -------------------------------------------------------------------------
    # Prompt
    # -------------------------------------------------------------------------

    async def select_knowledge(self, page: Any) -> StepOutcome:
        """
        Attach the configured knowledge tag by typing "#" and picking it from the dropdown.

        When the option never appears the partial input is cleared and the
        prompt is sent without knowledge.
        """
        tag = self.settings.knowledge_tag
        if not tag:
            return StepOutcome(StepStatus.SKIPPED, detail="no knowledge tag configured")

        chat_input = await resolve(CHAT_INPUT, page)
        if chat_input is None:
            return StepOutcome(StepStatus.SKIPPED, detail="chat input not found")

        logger.info(f"[{self.run_id}] Selecting '{tag}' knowledge...")
        await chat_input.handle.click()
        await chat_input.handle.fill("")
        await chat_input.handle.type("#")

        options = knowledge_option_cascade(tag)
        result = await self.wait(
            lambda: resolve(options, page, where=lambda r: len(r.text) < 100),
            self.waits.knowledge_option,
            f"'{tag}' knowledge option",
        )

        if result.satisfied:
            chosen = await click(options, page, first=result.value, attempts=self.settings.action_attempts)
            if chosen is not None:
                logger.success(f"[{self.run_id}] Selected '{tag}' knowledge via {chosen.label}")
                await self.settle()
                await chat_input.handle.type(" ")
                return StepOutcome(StepStatus.SUCCESS, detail=chosen.label)

        logger.warning(f"[{self.run_id}] Could not find '{tag}' knowledge option, proceeding without knowledge")
        await chat_input.handle.fill("")
        return StepOutcome(StepStatus.TIMED_OUT, detail="knowledge option not found")

    async def submit_prompt(self, page: Any, prompt: str, append: bool = False) -> StepOutcome:
        """
        Type the prompt into the chat input and send it.

        Args:
            page: Playwright page
            prompt: Prompt text
            append: Keep existing input (a selected knowledge tag) and type after it

        Returns:
            FAILED when no chat input exists, otherwise SUCCESS
        """
        attempts = self.settings.action_attempts
        if append:
            chat_input = await resolve(CHAT_INPUT, page)
            if chat_input is not None:
                await chat_input.handle.type(prompt)
        else:
            chat_input = await fill(CHAT_INPUT, page, prompt, attempts=attempts)

        if chat_input is None:
            available = ", ".join(await describe_inputs(page))
            logger.error(f"[{self.run_id}] Could not find chat input field. Available elements: {available}")
            return StepOutcome(StepStatus.FAILED, detail=f"{ElementNotFound(CHAT_INPUT.name)} (available: {available})")

        logger.info(f"[{self.run_id}] Filled chat input via {chat_input.label}")

        sent = await click(SEND_BUTTON, page, attempts=attempts)
        if sent is not None:
            logger.info(f"[{self.run_id}] Message sent via {sent.label}")
        else:
            logger.info(f"[{self.run_id}] No send button found, pressing Enter")
            await page.keyboard.press("Enter")

        return StepOutcome(StepStatus.SUCCESS, element=chat_input)

    # -------------------------------------------------------------------------
    # Response
    # -------------------------------------------------------------------------

    async def _response_progress(self, page: Any, elapsed: float):
        if not self.settings.debug:
            return
        buttons = [b.get("text") for b in await describe_buttons(page)]
        generating = await probe(GENERATING_INDICATORS, page) is not None
        logger.debug(f"[{self.run_id}] Buttons: {buttons}, loading elements present: {generating}")

    async def wait_for_response(self, page: Any, prompt: str = "") -> StepOutcome:
        """
        Wait for the answer to finish generating (follow-up suggestions appear).

        A short wait for generation to start comes first and may time out
        silently; fast answers can finish before any indicator is seen.
        """
        logger.info(f"[{self.run_id}] Waiting for LLM response...")
        await self.settle(2.0)

        started = await self.wait(lambda: generation_started(page), self.waits.generation_start, "response generation start")
        if started.satisfied:
            logger.info(f"[{self.run_id}] Response generation started: {started.value}")
        else:
            logger.debug(f"[{self.run_id}] No generation indicator seen, waiting for completion anyway")

        result = await self.wait(
            lambda: response_complete(page, prompt),
            self.waits.response,
            "LLM response completion",
            on_progress=lambda elapsed: self._response_progress(page, elapsed),
        )
        if result.satisfied:
            logger.success(f"[{self.run_id}] LLM response appears complete: {result.value}")
        else:
            logger.warning(f"[{self.run_id}] Follow-up questions not detected within timeout, but proceeding")

        await self.settle(3.0)
        await self.snapshots.capture(page, "openwebui-response-complete")
        await self.wait_for_network_idle(page)
        return self.outcome_from_poll(result)

    async def extract_response(self, page: Any, prompt: str) -> ExtractedResponse:
        """Raises ExtractionFailed when no strategy finds the answer"""
        return await self.pipeline.extract(page, prompt)
