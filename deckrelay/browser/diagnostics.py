"""Diagnostic snapshots and page dumps.

Snapshots are requested at decision points (login state unclear, template
selection, generate button ready, final deck) and on fatal aborts. Failing to
take one must never break the workflow, so every error here is logged and
swallowed.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger


_BUTTON_DUMP_JS = """
() => Array.from(document.querySelectorAll('button'))
    .map((btn, index) => ({
        index,
        text: (btn.textContent || '').trim().slice(0, 60),
        enabled: !btn.disabled,
        visible: btn.offsetParent !== null,
    }))
    .filter(btn => btn.text && btn.visible)
    .slice(0, 12)
"""

_INPUT_DUMP_JS = """
() => Array.from(document.querySelectorAll('input, textarea'))
    .slice(0, 10)
    .map(el => el.tagName + (el.placeholder ? `[placeholder="${el.placeholder}"]` : '')
        + (el.className ? '.' + el.className.toString().split(' ').filter(Boolean).join('.') : ''))
"""


class SnapshotRecorder:
    """Takes full-page screenshots and remembers where they went"""

    def __init__(self, snapshot_dir: str = "screenshots", enabled: bool = True, run_id: str = "N/A"):
        self.snapshot_dir = Path(snapshot_dir)
        self.enabled = enabled
        self.run_id = run_id
        self.paths: List[str] = []

    def _path_for(self, label: str) -> Path:
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        safe_label = "".join(c if c.isalnum() or c in "-_" else "-" for c in label)
        return self.snapshot_dir / f"{safe_label}-{timestamp}.png"

    async def capture(self, page: Any, label: str) -> Optional[str]:
        """
        Save a full-page screenshot.

        Args:
            page: Playwright page
            label: Short name describing the decision point

        Returns:
            Path of the screenshot, or None if disabled or it failed
        """
        if not self.enabled or page is None:
            return None

        path = self._path_for(label)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            logger.debug(f"[{self.run_id}] Snapshot '{label}' failed: {e}")
            return None

        self.paths.append(str(path))
        logger.info(f"[{self.run_id}] Snapshot saved: {path}")
        return str(path)


async def describe_buttons(page: Any) -> List[Dict[str, Any]]:
    """Visible buttons with their text and enabled state (for progress logs)"""
    try:
        return await page.evaluate(_BUTTON_DUMP_JS) or []
    except Exception as e:
        logger.debug(f"Button dump failed: {e}")
        return []


async def describe_inputs(page: Any) -> List[str]:
    """Short descriptions of input/textarea elements (for "input not found" logs)"""
    try:
        return await page.evaluate(_INPUT_DUMP_JS) or []
    except Exception as e:
        logger.debug(f"Input dump failed: {e}")
        return []


async def page_state(page: Any) -> Dict[str, Any]:
    """Title and URL of the page, tolerant of a closed or navigating page"""
    state: Dict[str, Any] = {"url": getattr(page, "url", None)}
    try:
        state["title"] = await page.title()
    except Exception as e:
        logger.debug(f"Could not read page title: {e}")
        state["title"] = None
    return state
