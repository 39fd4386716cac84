"""Selector cascades: ordered element descriptors resolved against a live page.

The target applications ship several markup variants for the same UI concept
(the chat input, the send button, the generate button...). A Cascade lists the
known representations from most specific to most generic and the resolver
returns the first one that is currently usable.

Resolution is read-only and never raises: a descriptor that matches nothing,
or whose selector syntax the page rejects, is logged and skipped.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from deckrelay.errors import ActionRejected


# Upper bound on instances inspected per descriptor (generic selectors such as
# "button" can match hundreds of nodes)
MAX_CANDIDATES = 25


# =============================================================================
# DATA TYPES
# =============================================================================

@dataclass(frozen=True)
class ElementDescriptor:
    """One way of recognising a UI concept.

    Attributes:
        selector: Structural selector handed to ``scope.locator`` (CSS or
            Playwright selector syntax)
        rank: Preference rank, lower is tried first
        text_contains: Substrings that must all appear in the element text
            (case-insensitive)
        attribute: ``(name, substring)`` pair the element attribute must contain
        description: Human readable label for logs
        require_visible: Skip instances that are not visible
        require_enabled: Skip instances that are disabled
    """
    selector: str
    rank: int = 0
    text_contains: Tuple[str, ...] = ()
    attribute: Optional[Tuple[str, str]] = None
    description: str = ""
    require_visible: bool = True
    require_enabled: bool = True

    @property
    def label(self) -> str:
        if self.description:
            return self.description
        if self.text_contains:
            return f"{self.selector} ~ {'+'.join(self.text_contains)}"
        return self.selector

    def text_matches(self, text: str) -> bool:
        lowered = (text or "").lower()
        return all(fragment.lower() in lowered for fragment in self.text_contains)


@dataclass(frozen=True)
class Cascade:
    """Ordered, immutable list of descriptors for one UI concept"""
    name: str
    descriptors: Tuple[ElementDescriptor, ...]

    def ordered(self) -> List[ElementDescriptor]:
        # sorted() is stable, so equal ranks keep declaration order
        return sorted(self.descriptors, key=lambda d: d.rank)

    def __len__(self) -> int:
        return len(self.descriptors)


@dataclass(frozen=True)
class ResolvedElement:
    """A cascade match at one instant. Never carried over to the next poll tick."""
    handle: Any
    descriptor: ElementDescriptor
    cascade_name: str
    index: int
    visible: bool
    enabled: bool
    text: str = ""
    bounding_box: Optional[Dict[str, float]] = field(default=None, compare=False)

    @property
    def label(self) -> str:
        return f"{self.cascade_name}/{self.descriptor.label}[{self.index}]"


DescriptorLike = Union[str, ElementDescriptor]


def build_cascade(name: str, entries: Iterable[DescriptorLike], **defaults: Any) -> Cascade:
    """
    Build a Cascade from selector strings and/or descriptors.

    Plain strings become descriptors ranked by their position; ``defaults``
    are applied to every string entry (e.g. ``require_enabled=False``).

    Args:
        name: Cascade name used in logs
        entries: Selector strings or ElementDescriptor instances, most specific first
        **defaults: ElementDescriptor fields applied to string entries

    Returns:
        Cascade
    """
    descriptors = []
    for position, entry in enumerate(entries):
        if isinstance(entry, ElementDescriptor):
            descriptors.append(entry if entry.rank else _with_rank(entry, position))
        else:
            descriptors.append(ElementDescriptor(selector=entry, rank=position, **defaults))
    return Cascade(name=name, descriptors=tuple(descriptors))


def _with_rank(descriptor: ElementDescriptor, rank: int) -> ElementDescriptor:
    return ElementDescriptor(
        selector=descriptor.selector,
        rank=rank,
        text_contains=descriptor.text_contains,
        attribute=descriptor.attribute,
        description=descriptor.description,
        require_visible=descriptor.require_visible,
        require_enabled=descriptor.require_enabled,
    )


# =============================================================================
# RESOLUTION
# =============================================================================

async def _match_descriptor(
    descriptor: ElementDescriptor,
    cascade_name: str,
    scope: Any,
    where: Optional[Callable[[ResolvedElement], bool]],
) -> Optional[ResolvedElement]:
    locator = scope.locator(descriptor.selector)
    count = await locator.count()

    for index in range(min(count, MAX_CANDIDATES)):
        candidate = locator.nth(index)

        visible = await candidate.is_visible()
        if descriptor.require_visible and not visible:
            continue

        enabled = await candidate.is_enabled()
        if descriptor.require_enabled and not enabled:
            continue

        text = ""
        if descriptor.text_contains or where is not None:
            text = (await candidate.text_content() or "").strip()
            if not descriptor.text_matches(text):
                continue

        if descriptor.attribute:
            name, expected = descriptor.attribute
            actual = await candidate.get_attribute(name)
            if actual is None or expected.lower() not in actual.lower():
                continue

        box = None
        try:
            box = await candidate.bounding_box()
        except Exception:
            pass

        resolved = ResolvedElement(
            handle=candidate,
            descriptor=descriptor,
            cascade_name=cascade_name,
            index=index,
            visible=visible,
            enabled=enabled,
            text=text,
            bounding_box=box,
        )
        if where is not None and not where(resolved):
            continue
        return resolved

    return None


async def resolve(
    cascade: Cascade,
    scope: Any,
    where: Optional[Callable[[ResolvedElement], bool]] = None,
) -> Optional[ResolvedElement]:
    """
    Return the first visible, enabled match across the cascade.

    Args:
        cascade: Descriptors to try in rank order
        scope: Page or locator to query (anything with ``locator()``)
        where: Optional extra acceptance test on each candidate

    Returns:
        ResolvedElement for the first descriptor/instance that qualifies, else None
    """
    for descriptor in cascade.ordered():
        try:
            match = await _match_descriptor(descriptor, cascade.name, scope, where)
        except Exception as e:
            logger.debug(f"Cascade '{cascade.name}': descriptor {descriptor.label} failed: {e}")
            continue

        if match is not None:
            logger.debug(f"Cascade '{cascade.name}' resolved via {descriptor.label} (instance {match.index})")
            return match

    return None


async def probe(cascade: Cascade, scope: Any) -> Optional[ElementDescriptor]:
    """
    Presence check: the first descriptor matching at least one element.

    Visibility and enabled state are ignored, which is what indicator checks
    (login form present? chat input present?) need.

    Returns:
        The matching descriptor, or None
    """
    for descriptor in cascade.ordered():
        try:
            if await scope.locator(descriptor.selector).count() > 0:
                return descriptor
        except Exception as e:
            logger.debug(f"Probe '{cascade.name}': descriptor {descriptor.label} failed: {e}")
    return None


# =============================================================================
# ACTIONS
# =============================================================================

ElementAction = Callable[[Any], Awaitable[Any]]


async def act(
    cascade: Cascade,
    scope: Any,
    action: ElementAction,
    first: Optional[ResolvedElement] = None,
    attempts: int = 3,
    retry_delay: float = 0.5,
    where: Optional[Callable[[ResolvedElement], bool]] = None,
) -> Optional[ResolvedElement]:
    """
    Run ``action`` on a cascade match, re-resolving when the action is rejected.

    A click or fill can fail because the element was replaced or disabled
    between resolution and action. Each retry resolves the cascade again
    rather than reusing the stale handle.

    Args:
        cascade: Cascade to resolve
        scope: Page or locator
        action: Coroutine taking the element handle (e.g. ``lambda h: h.click()``)
        first: Already resolved element to use for the first attempt
        attempts: Total attempts including the first
        retry_delay: Seconds between attempts
        where: Optional acceptance test forwarded to resolve()

    Returns:
        The element the action succeeded on, or None if nothing resolved or
        every attempt was rejected
    """
    pending_first = [first] if first is not None else []

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_fixed(retry_delay),
            retry=retry_if_exception_type(ActionRejected),
            reraise=True,
        ):
            with attempt:
                element = pending_first.pop() if pending_first else await resolve(cascade, scope, where=where)
                if element is None:
                    logger.debug(f"Cascade '{cascade.name}': nothing to act on")
                    return None
                try:
                    await action(element.handle)
                except Exception as e:
                    raise ActionRejected("action", element.label, e) from e
                return element
    except ActionRejected as e:
        logger.warning(f"Cascade '{cascade.name}': giving up after {attempts} attempt(s) - {e}")
        return None

    return None


async def click(cascade: Cascade, scope: Any, **kwargs: Any) -> Optional[ResolvedElement]:
    """Click the first usable element of the cascade"""
    return await act(cascade, scope, lambda handle: handle.click(timeout=5000), **kwargs)


async def fill(cascade: Cascade, scope: Any, value: str, **kwargs: Any) -> Optional[ResolvedElement]:
    """Clear and fill the first usable element of the cascade"""
    async def _fill(handle: Any) -> None:
        await handle.click(timeout=5000)
        await handle.fill("")
        await handle.fill(value)

    return await act(cascade, scope, _fill, **kwargs)
