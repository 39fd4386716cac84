"""Playwright browser lifecycle for a workflow run"""

import os
from typing import List, Optional

from loguru import logger
from playwright.async_api import Browser, BrowserContext, Page, async_playwright


class BrowserSession:
    """One Chromium instance and context; pages are opened per workflow stage"""

    def __init__(self, run_id: str = "N/A", slow_mo: int = 100):
        self.run_id = run_id
        self.slow_mo = slow_mo
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.pages: List[Page] = []
        self._playwright = None

    async def start(self, headless: Optional[bool] = None):
        """
        Launch Chromium.

        Args:
            headless: Override headless mode. If None, reads HEADLESS (default: False)
        """
        if headless is None:
            headless = os.getenv("HEADLESS", "false").lower() in ("true", "1", "yes")

        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(headless=headless, slow_mo=self.slow_mo)
        self.context = await self.browser.new_context(viewport={"width": 1280, "height": 900})

        mode = "headless" if headless else "headed"
        logger.info(f"[{self.run_id}] Browser started in {mode} mode")

    async def new_page(self) -> Page:
        """Open a fresh page in the session context"""
        if not self.context:
            raise ValueError("Browser not started")
        page = await self.context.new_page()
        self.pages.append(page)
        return page

    async def close(self):
        """Close browser and stop Playwright"""
        try:
            if self.context:
                await self.context.close()

            if self.browser:
                await self.browser.close()

            if self._playwright:
                await self._playwright.stop()

            logger.info(f"[{self.run_id}] Browser closed")
        except Exception as e:
            logger.debug(f"[{self.run_id}] Error closing browser: {e}")
        finally:
            self.pages = []
            self.context = None
            self.browser = None
            self._playwright = None

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
