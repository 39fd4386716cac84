"""Response extraction: turn "the chat shows a finished answer" into a string.

The chat application's markup is not a stable contract, so extraction is an
ordered chain of strategies that trade precision for robustness:

1. structured_selector - cascade over known "last message content" shapes
2. document_scan       - every message container, newest first, skipping
                         short texts and echoes of the prompt
3. page_text           - visible page text mined line by line, UI chrome and
                         short lines removed, last line wins

The first non-empty result wins. Only when all three come back empty is
ExtractionFailed raised.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from deckrelay.browser.cascade import Cascade, resolve
from deckrelay.errors import ExtractionFailed


MIN_CONTAINER_CHARS = 50
MIN_LINE_CHARS = 100
ECHO_PROBE_CHARS = 80


class ExtractionStrategy(str, Enum):
    STRUCTURED_SELECTOR = "structured_selector"
    DOCUMENT_SCAN = "document_scan"
    PAGE_TEXT = "page_text"


class ExtractedResponse(BaseModel):
    """Extracted LLM answer plus the strategy that produced it"""
    model_config = ConfigDict(frozen=True)

    text: str
    strategy: ExtractionStrategy
    source: str = ""
    extracted_at: str = Field(default_factory=lambda: datetime.now().isoformat())

    @property
    def preview(self) -> str:
        return self.text[:100] + ("..." if len(self.text) > 100 else "")


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip().lower()


def echoes_prompt(text: str, prompt: str) -> bool:
    """True if ``text`` contains the (start of the) submitted prompt"""
    probe = _normalize(prompt)[:ECHO_PROBE_CHARS]
    if not probe:
        return False
    return probe in _normalize(text)


class ResponsePipeline:
    """Runs the three extraction strategies in order against one page"""

    def __init__(
        self,
        content_cascade: Cascade,
        container_selectors: Sequence[str],
        chrome_strings: Sequence[str],
        min_container_chars: int = MIN_CONTAINER_CHARS,
        min_line_chars: int = MIN_LINE_CHARS,
        run_id: str = "N/A",
    ):
        self.content_cascade = content_cascade
        self.container_selectors = list(container_selectors)
        self.chrome_strings = [s.lower() for s in chrome_strings]
        self.min_container_chars = min_container_chars
        self.min_line_chars = min_line_chars
        self.run_id = run_id

    # -------------------------------------------------------------------------
    # Strategies. Each returns (text, source) or None.
    # -------------------------------------------------------------------------

    async def from_structured_selector(self, page: Any, prompt: str) -> Optional[Tuple[str, str]]:
        element = await resolve(self.content_cascade, page, where=lambda r: bool(r.text))
        if element is None:
            return None
        return element.text, element.descriptor.label

    async def from_document_scan(self, page: Any, prompt: str) -> Optional[Tuple[str, str]]:
        for selector in self.container_selectors:
            try:
                texts = await page.locator(selector).all_text_contents()
            except Exception as e:
                logger.debug(f"[{self.run_id}] Document scan selector {selector} failed: {e}")
                continue

            for raw in reversed(texts):
                text = (raw or "").strip()
                if len(text) < self.min_container_chars:
                    continue
                if echoes_prompt(text, prompt):
                    continue
                return text, selector
        return None

    async def from_page_text(self, page: Any, prompt: str) -> Optional[Tuple[str, str]]:
        body = await page.inner_text("body")
        if not body:
            return None

        candidates = [
            line.strip()
            for line in body.split("\n")
            if len(line.strip()) >= self.min_line_chars and not self._is_chrome(line)
        ]
        if not candidates:
            return None
        return candidates[-1], "body"

    def _is_chrome(self, line: str) -> bool:
        lowered = line.lower()
        return any(chrome in lowered for chrome in self.chrome_strings)

    def strategies(self) -> List[Tuple[ExtractionStrategy, Callable[[Any, str], Awaitable[Optional[Tuple[str, str]]]]]]:
        return [
            (ExtractionStrategy.STRUCTURED_SELECTOR, self.from_structured_selector),
            (ExtractionStrategy.DOCUMENT_SCAN, self.from_document_scan),
            (ExtractionStrategy.PAGE_TEXT, self.from_page_text),
        ]

    async def extract(self, page: Any, prompt: str = "") -> ExtractedResponse:
        """
        Extract the latest LLM response from the page.

        Args:
            page: Playwright page showing the finished answer
            prompt: The submitted prompt (used to skip echoed user messages)

        Returns:
            ExtractedResponse tagged with the winning strategy

        Raises:
            ExtractionFailed: if every strategy came back empty
        """
        logger.info(f"[{self.run_id}] Extracting latest LLM response...")

        for strategy, run in self.strategies():
            try:
                result = await run(page, prompt)
            except Exception as e:
                logger.debug(f"[{self.run_id}] Extraction strategy {strategy.value} failed: {e}")
                result = None

            if result and result[0]:
                text, source = result
                response = ExtractedResponse(text=text, strategy=strategy, source=source)
                logger.success(f"[{self.run_id}] Response extracted via {strategy.value} ({source})")
                logger.info(f"[{self.run_id}] Response preview: {response.preview}")
                return response

            logger.info(f"[{self.run_id}] Strategy {strategy.value} produced nothing, falling back")

        raise ExtractionFailed()
