"""Heuristic check that a selection click actually took effect.

Clicking a template card dispatches fine even when the app ignores it, so after
a selection click we look at what the page renders around the clicked element:
selected/checked/active class names, check-mark glyphs, aria/data selection
attributes and a light-blue "selected" background. Any one signal counts.

This is advisory. A false negative only costs one more click attempt; callers
proceed with their fallback path once the attempt budget is spent.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger


CHECK_GLYPHS = ("✓", "✔", "☑", "✅")

SELECTION_ATTRIBUTES = ("aria-selected", "aria-checked", "data-selected", "data-state")

# Class tokens like "selected", "is-selected", "template_active"; tailwind
# variants ("active:scale-95") contain a colon and are ignored
_SELECTED_CLASS = re.compile(r"(^|[-_])(selected|checked|active)$")

_RGB = re.compile(r"rgba?\(\s*(\d+)[,\s]+(\d+)[,\s]+(\d+)(?:[,\s/]+([\d.]+))?\s*\)")

# Collects the anchor, a few ancestors, its siblings and descendants
_COLLECT_SIGNALS_JS = """
(anchor) => {
    const nodes = [];
    const push = (el, relation) => {
        if (!el || nodes.length >= 60) return;
        const style = window.getComputedStyle(el);
        const ownText = Array.from(el.childNodes)
            .filter(n => n.nodeType === Node.TEXT_NODE)
            .map(n => n.textContent || '')
            .join(' ')
            .trim()
            .slice(0, 40);
        const attrs = {};
        for (const name of ['aria-selected', 'aria-checked', 'data-selected', 'data-state']) {
            const value = el.getAttribute(name);
            if (value !== null) attrs[name] = value;
        }
        nodes.push({
            relation,
            tag: el.tagName,
            className: (el.className && el.className.toString()) || '',
            text: ownText,
            attributes: attrs,
            backgroundColor: style.backgroundColor,
            borderColor: style.borderColor,
        });
    };

    push(anchor, 'self');
    let parent = anchor.parentElement;
    for (let depth = 0; parent && depth < 3; depth++) {
        push(parent, 'ancestor');
        parent = parent.parentElement;
    }
    push(anchor.previousElementSibling, 'sibling');
    push(anchor.nextElementSibling, 'sibling');
    for (const child of Array.from(anchor.querySelectorAll('*')).slice(0, 40)) {
        push(child, 'descendant');
    }
    return nodes;
}
"""


def parse_rgb(color: str) -> Optional[Tuple[int, int, int, float]]:
    """Parse a computed ``rgb()``/``rgba()`` string into (r, g, b, alpha)"""
    if not color:
        return None
    match = _RGB.search(color)
    if not match:
        return None
    r, g, b = (int(match.group(i)) for i in (1, 2, 3))
    alpha = float(match.group(4)) if match.group(4) is not None else 1.0
    return r, g, b, alpha


def is_selected_background(color: str) -> bool:
    """Light blue tint family (lightblue, skyblue, tailwind blue-50/100...)"""
    parsed = parse_rgb(color)
    if not parsed:
        return False
    r, g, b, alpha = parsed
    if alpha == 0:
        return False
    return b >= 200 and g >= 150 and b - r >= 15


def is_accent_border(color: str) -> bool:
    """Saturated blue outline drawn around a selected card"""
    parsed = parse_rgb(color)
    if not parsed:
        return False
    r, g, b, alpha = parsed
    if alpha == 0:
        return False
    return b >= 180 and b - r >= 100


def has_selected_class(class_name: str) -> bool:
    for token in (class_name or "").split():
        if ":" in token:
            continue
        if _SELECTED_CLASS.search(token.lower()):
            return True
    return False


def signal_reason(node: Dict[str, Any]) -> Optional[str]:
    """Return why a collected node looks selected, or None"""
    if has_selected_class(node.get("className", "")):
        return f"class '{node.get('className')}'"

    text = node.get("text") or ""
    for glyph in CHECK_GLYPHS:
        if glyph in text:
            return f"check glyph {glyph!r}"

    for name, value in (node.get("attributes") or {}).items():
        value = (value or "").lower()
        if name == "data-state":
            if value in ("checked", "active", "on", "selected"):
                return f"{name}={value}"
        elif value == "true":
            return f"{name}=true"

    if is_selected_background(node.get("backgroundColor", "")):
        return f"background {node.get('backgroundColor')}"

    if node.get("relation") in ("self", "ancestor") and is_accent_border(node.get("borderColor", "")):
        return f"border {node.get('borderColor')}"

    return None


def signals_indicate_selection(nodes: Iterable[Dict[str, Any]]) -> Optional[str]:
    """First selection signal across the collected neighborhood, or None"""
    for node in nodes:
        reason = signal_reason(node)
        if reason:
            return f"{node.get('relation', '?')} {node.get('tag', '?')}: {reason}"
    return None


async def collect_signals(anchor: Any) -> List[Dict[str, Any]]:
    """Run the collector script on the anchor element (a Playwright locator)"""
    nodes = await anchor.evaluate(_COLLECT_SIGNALS_JS)
    return nodes or []


async def is_confirmed(anchor: Any, run_id: str = "N/A") -> bool:
    """
    Check the anchor's neighborhood for visual selection markers.

    Args:
        anchor: Locator (or ResolvedElement handle) of the clicked element
        run_id: Correlation id for logging

    Returns:
        True if any selection signal fires. Errors count as "not confirmed".
    """
    handle = getattr(anchor, "handle", anchor)
    try:
        nodes = await collect_signals(handle)
    except Exception as e:
        logger.debug(f"[{run_id}] Could not collect selection signals: {e}")
        return False

    reason = signals_indicate_selection(nodes)
    if reason:
        logger.info(f"[{run_id}] Visual confirmation found: {reason}")
        return True

    logger.debug(f"[{run_id}] No visual confirmation among {len(nodes)} inspected node(s)")
    return False


@dataclass(frozen=True)
class ConfirmationResult:
    confirmed: bool
    attempts: int


async def click_with_confirmation(
    click: Callable[[], Awaitable[Any]],
    confirm: Callable[[], Awaitable[bool]],
    attempts: int = 2,
    settle: float = 0.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    run_id: str = "N/A",
) -> ConfirmationResult:
    """
    Click, check for visual confirmation, and re-click within a bounded budget.

    Args:
        click: Performs the selection click
        confirm: Returns True when the selection is visibly applied
        attempts: Maximum number of clicks
        settle: Seconds to let the UI animate between click and check
        sleep: Sleep function (injectable for tests)
        run_id: Correlation id for logging

    Returns:
        ConfirmationResult with the number of clicks performed
    """
    for attempt in range(1, attempts + 1):
        try:
            await click()
        except Exception as e:
            logger.debug(f"[{run_id}] Selection click attempt {attempt} raised: {e}")
            continue

        if settle > 0:
            await sleep(settle)

        if await confirm():
            return ConfirmationResult(True, attempt)

        logger.info(f"[{run_id}] Selection not visually confirmed (attempt {attempt}/{attempts})")

    return ConfirmationResult(False, attempts)
