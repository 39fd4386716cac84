"""Unit tests for the Open WebUI platform steps"""

import pytest
from pathlib import Path
import sys

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from deckrelay.browser.diagnostics import SnapshotRecorder
from deckrelay.browser.poller import StatePoller
from deckrelay.config.settings import Settings
from deckrelay.platforms.openwebui_platform import (
    OpenWebUIPlatform,
    generation_started,
    is_login_url,
    response_complete,
)
from deckrelay.workflow.states import (
    BRANCH_CHAT,
    BRANCH_LOGIN,
    BRANCH_SIGNUP,
    BRANCH_UNKNOWN,
    StepStatus,
)


CHAT_TEXTAREA = 'textarea[placeholder*="Send a message"]'
EMAIL = 'input[type="email"]'
PASSWORD = 'input[type="password"]'


@pytest.fixture
def make_platform(fake_clock, tmp_path):
    """Build an OpenWebUIPlatform on the instant clock"""
    def _make(**overrides):
        settings = Settings(snapshot_dir=str(tmp_path), **overrides)
        poller = StatePoller(run_id="test", clock=fake_clock, sleep=fake_clock.sleep)
        snapshots = SnapshotRecorder(str(tmp_path), run_id="test")
        return OpenWebUIPlatform(settings, poller, snapshots, run_id="test", sleep=fake_clock.sleep)
    return _make


class TestLoginDetection:
    """Test chat/login/signup branching"""

    @pytest.mark.asyncio
    async def test_chat_indicator_wins_over_login_form(self, make_platform, fake_page):
        """Test that a visible chat input means no login even if login fields exist"""
        fake_page.url = "http://localhost:3000/auth"
        fake_page.add(CHAT_TEXTAREA)
        fake_page.add(EMAIL)
        fake_page.add(PASSWORD)

        outcome = await make_platform(username="me", password="pw").detect_login_state(fake_page)

        assert outcome.ok
        assert outcome.branch == BRANCH_CHAT

    @pytest.mark.asyncio
    async def test_login_url_with_credentials(self, make_platform, fake_page):
        fake_page.url = "http://localhost:3000/auth?redirect=%2F"

        outcome = await make_platform(username="me", password="pw").detect_login_state(fake_page)

        assert outcome.branch == BRANCH_LOGIN

    @pytest.mark.asyncio
    async def test_login_form_without_credentials_signs_up(self, make_platform, fake_page, fake_clock):
        """Test the signup fallback once the chat wait has timed out"""
        fake_page.url = "http://localhost:3000/"
        fake_page.add(PASSWORD)

        outcome = await make_platform().detect_login_state(fake_page)

        assert outcome.branch == BRANCH_SIGNUP
        assert fake_clock.now >= 9

    @pytest.mark.asyncio
    async def test_unclear_state_snapshots_and_continues(self, make_platform, fake_page):
        fake_page.url = "http://localhost:3000/"

        outcome = await make_platform().detect_login_state(fake_page)

        assert outcome.status is StepStatus.TIMED_OUT
        assert outcome.branch == BRANCH_UNKNOWN
        assert len(fake_page.screenshots) == 1
        assert "login-state-unclear" in fake_page.screenshots[0]

    def test_login_url_patterns(self):
        assert is_login_url("http://host/auth")
        assert is_login_url("http://host/signin?next=/")
        assert not is_login_url("http://host/c/123")
        assert not is_login_url(None)


class TestLogin:
    """Test credential login"""

    @pytest.mark.asyncio
    async def test_successful_login(self, make_platform, fake_page):
        """Test that the login form disappearing counts as success"""
        email = fake_page.add(EMAIL)
        password = fake_page.add(PASSWORD)
        fake_page.add('button[type="submit"]', text="Sign in", on_click=lambda el: fake_page.remove(PASSWORD))

        outcome = await make_platform(username="me@example.com", password="hunter2").login(fake_page)

        assert outcome.ok
        assert email.value == "me@example.com"
        assert password.value == "hunter2"
        assert fake_page.keyboard.pressed == []

    @pytest.mark.asyncio
    async def test_enter_when_no_button_and_timeout(self, make_platform, fake_page):
        """Test the Enter fallback and a soft timeout when the form stays"""
        fake_page.add(EMAIL)
        fake_page.add(PASSWORD)
        fake_page.add('.error', text="Invalid credentials")

        outcome = await make_platform(username="me", password="wrong").login(fake_page)

        assert outcome.status is StepStatus.TIMED_OUT
        assert fake_page.keyboard.pressed == ["Enter"]

    @pytest.mark.asyncio
    async def test_signup_without_option(self, make_platform, fake_page):
        outcome = await make_platform().signup(fake_page)

        assert outcome.status is StepStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_signup_fills_both_passwords(self, make_platform, fake_page):
        fake_page.add('button:has-text("Sign up")', text="Sign up")
        email = fake_page.add(EMAIL)
        first = fake_page.add(PASSWORD)
        confirm = fake_page.add(PASSWORD)
        fake_page.add('button[type="submit"]', text="Create Account")

        outcome = await make_platform().signup(fake_page)

        assert outcome.ok
        assert email.value == "test@example.com"
        assert first.value == confirm.value == "password123"


class TestKnowledgeSelection:
    """Test the "#" knowledge picker"""

    @pytest.mark.asyncio
    async def test_no_tag_skips(self, make_platform, fake_page):
        outcome = await make_platform().select_knowledge(fake_page)

        assert outcome.status is StepStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_selects_option(self, make_platform, fake_page):
        """Test typing "#", clicking the option and leaving a trailing space"""
        chat = fake_page.add(CHAT_TEXTAREA)
        option = fake_page.add('[role="option"]', text="Handbook")

        outcome = await make_platform(knowledge_tag="handbook").select_knowledge(fake_page)

        assert outcome.ok
        assert option.clicks == 1
        assert chat.typed == ["#", " "]

    @pytest.mark.asyncio
    async def test_long_text_is_not_an_option(self, make_platform, fake_page):
        """Test that a container mentioning the tag inside long text is not clicked"""
        chat = fake_page.add(CHAT_TEXTAREA)
        container = fake_page.add('div', text="handbook " + "x" * 120)

        outcome = await make_platform(knowledge_tag="handbook").select_knowledge(fake_page)

        assert outcome.status is StepStatus.TIMED_OUT
        assert container.clicks == 0
        assert chat.value == ""


class TestSubmitPrompt:
    """Test prompt submission"""

    @pytest.mark.asyncio
    async def test_no_input_fails(self, make_platform, fake_page):
        outcome = await make_platform().submit_prompt(fake_page, "hello")

        assert outcome.status is StepStatus.FAILED
        assert outcome.detail.startswith("No usable element for cascade 'chat_input'")

    @pytest.mark.asyncio
    async def test_send_button(self, make_platform, fake_page):
        chat = fake_page.add(CHAT_TEXTAREA)
        send = fake_page.add('#send-message-button')

        outcome = await make_platform().submit_prompt(fake_page, "hello")

        assert outcome.ok
        assert chat.value == "hello"
        assert send.clicks == 1

    @pytest.mark.asyncio
    async def test_enter_fallback(self, make_platform, fake_page):
        fake_page.add(CHAT_TEXTAREA)

        await make_platform().submit_prompt(fake_page, "hello")

        assert fake_page.keyboard.pressed == ["Enter"]

    @pytest.mark.asyncio
    async def test_append_keeps_knowledge_tag(self, make_platform, fake_page):
        """Test that append mode types after the selected tag"""
        chat = fake_page.add(CHAT_TEXTAREA)
        chat.value = "#handbook "

        await make_platform().submit_prompt(fake_page, "hello", append=True)

        assert chat.value == "#handbook hello"


class TestResponseCompletion:
    """Test the follow-up suggestion heuristic"""

    @pytest.mark.asyncio
    async def test_follow_up_element(self, fake_page):
        fake_page.add('.follow-up')

        assert await response_complete(fake_page)

    @pytest.mark.asyncio
    async def test_still_generating(self, fake_page):
        fake_page.add('.animate-spin')
        fake_page.body_text = "Suggested follow-up questions"

        assert await response_complete(fake_page) is None

    @pytest.mark.asyncio
    async def test_page_text_fallback(self, fake_page):
        fake_page.body_text = "Answer text\nSuggested questions"

        assert await response_complete(fake_page) == "follow-up content in page text"

    @pytest.mark.asyncio
    async def test_nothing_yet(self, fake_page):
        fake_page.body_text = "Thinking"

        assert await response_complete(fake_page) is None

    @pytest.mark.asyncio
    async def test_prompt_words_do_not_count(self, fake_page):
        """Test that "question" in the user's own message is not taken as follow-ups"""
        prompt = "Answer this question: what are the benefits of AI in education?"
        fake_page.body_text = prompt

        assert await response_complete(fake_page, prompt) is None

    @pytest.mark.asyncio
    async def test_follow_ups_beyond_the_prompt_count(self, fake_page):
        prompt = "Answer this question: what are the benefits of AI in education?"
        fake_page.body_text = f"{prompt}\nAI personalises learning.\nSuggested follow-ups"

        assert await response_complete(fake_page, prompt) == "follow-up content in page text"

    @pytest.mark.asyncio
    async def test_generation_started(self, fake_page):
        assert await generation_started(fake_page) is None

        fake_page.add('.animate-pulse')

        assert await generation_started(fake_page) == "generating (.animate-pulse)"

    @pytest.mark.asyncio
    async def test_waits_for_generation_before_completion(self, make_platform, fake_page, fake_clock):
        """Test that completion is only judged after the generation-start wait"""
        prompt = "Which question matters most?"
        fake_page.body_text = prompt

        def answer(clock):
            if clock.now >= 6:
                fake_page.add('.suggestions')

        fake_clock.hooks.append(answer)

        outcome = await make_platform().wait_for_response(fake_page, prompt)

        assert outcome.ok
        assert outcome.element == "follow-up suggestions (.suggestions)"
        # 2s settle, then 1s generation-start ticks until the answer shows at 6s
        assert fake_clock.sleeps[:5] == [2.0, 1, 1, 1, 1]

    @pytest.mark.asyncio
    async def test_wait_for_response_snapshots(self, make_platform, fake_page):
        fake_page.add('.suggestions')

        outcome = await make_platform().wait_for_response(fake_page)

        assert outcome.ok
        assert any("openwebui-response-complete" in path for path in fake_page.screenshots)
