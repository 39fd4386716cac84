"""Pytest configuration and shared fixtures for testing"""

import sys
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from playwright.async_api import Browser, Page, async_playwright

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


# =============================================================================
# IN-MEMORY PAGE
# =============================================================================
#
# Selectors are plain dictionary keys: a test registers elements under the
# exact selector strings the code under test queries. Only the Playwright
# surface used by deckrelay is implemented.

class FakeElement:
    """One DOM node as seen through a locator"""

    def __init__(
        self,
        text: str = "",
        visible: bool = True,
        enabled: bool = True,
        attributes: Optional[Dict[str, str]] = None,
        box: Optional[Dict[str, float]] = None,
        signals: Optional[List[List[Dict[str, Any]]]] = None,
        on_click: Optional[Callable[["FakeElement"], None]] = None,
        fail_clicks: int = 0,
    ):
        self.text = text
        self.visible = visible
        self.enabled = enabled
        self.attributes = attributes or {}
        self.box = box
        # Successive results of the visual confirmation collector
        self.signals = list(signals or [])
        self.on_click = on_click
        self.fail_clicks = fail_clicks
        self.clicks = 0
        self.value = ""
        self.typed: List[str] = []
        self.scrolled = False

    def collect_signals(self) -> List[Dict[str, Any]]:
        if not self.signals:
            return []
        if len(self.signals) == 1:
            return self.signals[0]
        return self.signals.pop(0)


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str, index: Optional[int] = None):
        self.page = page
        self.selector = selector
        self.index = index

    def _elements(self) -> List[FakeElement]:
        if self.selector in self.page.broken_selectors:
            raise ValueError(f"Unexpected token in selector {self.selector}")
        return self.page.elements.get(self.selector, [])

    def _target(self) -> FakeElement:
        elements = self._elements()
        index = self.index or 0
        if index >= len(elements):
            raise TimeoutError(f"No element for {self.selector}[{index}]")
        return elements[index]

    async def count(self) -> int:
        return len(self._elements())

    def nth(self, index: int) -> "FakeLocator":
        return FakeLocator(self.page, self.selector, index)

    @property
    def first(self) -> "FakeLocator":
        return self.nth(0)

    async def is_visible(self) -> bool:
        return self._target().visible

    async def is_enabled(self) -> bool:
        return self._target().enabled

    async def text_content(self) -> str:
        return self._target().text

    async def all_text_contents(self) -> List[str]:
        return [element.text for element in self._elements()]

    async def get_attribute(self, name: str) -> Optional[str]:
        return self._target().attributes.get(name)

    async def bounding_box(self) -> Optional[Dict[str, float]]:
        return self._target().box

    async def scroll_into_view_if_needed(self):
        self._target().scrolled = True

    async def click(self, timeout: Optional[float] = None):
        element = self._target()
        if element.fail_clicks > 0:
            element.fail_clicks -= 1
            raise TimeoutError(f"Element {self.selector} is not attached to the DOM")
        if not element.enabled:
            raise TimeoutError(f"Element {self.selector} is disabled")
        element.clicks += 1
        self.page.clicked.append(self.selector)
        if element.on_click is not None:
            element.on_click(element)

    async def fill(self, value: str):
        self._target().value = value

    async def type(self, text: str):
        element = self._target()
        element.typed.append(text)
        element.value += text

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return self._target().collect_signals()


class FakeKeyboard:
    def __init__(self):
        self.pressed: List[str] = []

    async def press(self, key: str):
        self.pressed.append(key)


class FakePage:
    """Page double implementing the DOM query surface deckrelay consumes"""

    def __init__(self, url: str = "about:blank", body_text: str = ""):
        self.url = url
        self.body_text = body_text
        self.elements: Dict[str, List[FakeElement]] = {}
        self.broken_selectors: set = set()
        self.scripts: Dict[str, Any] = {}
        self.keyboard = FakeKeyboard()
        self.clicked: List[str] = []
        self.visits: List[str] = []
        self.screenshots: List[str] = []
        self.closed = False
        self.on_goto: Optional[Callable[["FakePage", str], None]] = None

    def add(self, selector: str, text: str = "", **kwargs: Any) -> FakeElement:
        element = FakeElement(text=text, **kwargs)
        self.elements.setdefault(selector, []).append(element)
        return element

    def remove(self, selector: str):
        self.elements.pop(selector, None)

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    async def inner_text(self, selector: str) -> str:
        return self.body_text

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        for marker, value in self.scripts.items():
            if marker in script:
                return value(arg) if callable(value) else value
        if "document.body.textContent" in script:
            return self.body_text.lower()
        return None

    async def title(self) -> str:
        return "Fake Page"

    async def goto(self, url: str, **kwargs: Any):
        self.visits.append(url)
        self.url = url
        if self.on_goto is not None:
            self.on_goto(self, url)

    async def wait_for_load_state(self, state: str = "load", timeout: Optional[float] = None):
        return None

    async def screenshot(self, path: str, full_page: bool = False):
        self.screenshots.append(path)

    async def close(self):
        self.closed = True


class FakeClock:
    """Monotonic clock whose sleep advances time instantly"""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []
        self.hooks: List[Callable[["FakeClock"], None]] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        for hook in list(self.hooks):
            hook(self)


@pytest.fixture
def fake_page() -> FakePage:
    """An empty in-memory page"""
    return FakePage()


@pytest.fixture
def new_fake_page() -> Callable[..., FakePage]:
    """Factory for additional in-memory pages"""
    return FakePage


@pytest.fixture
def fake_clock() -> FakeClock:
    """Instant clock/sleep pair for poller-driven code"""
    return FakeClock()


# =============================================================================
# REAL BROWSER (integration tests)
# =============================================================================

@pytest_asyncio.fixture
async def browser() -> AsyncGenerator[Browser, None]:
    """Launch headless Chromium, skipping the test when it is not installed"""
    async with async_playwright() as p:
        try:
            browser = await p.chromium.launch(headless=True)
        except Exception as e:
            pytest.skip(f"Chromium not available: {e}")
        yield browser
        await browser.close()


@pytest_asyncio.fixture
async def page(browser: Browser) -> AsyncGenerator[Page, None]:
    """Create a new page for each test"""
    context = await browser.new_context(viewport={"width": 1280, "height": 720}, locale="en-US")
    page = await context.new_page()
    yield page
    await context.close()


# Pytest async configuration
def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "slow: mark test as slow (can be skipped with -m 'not slow')"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as requiring a real browser"
    )
