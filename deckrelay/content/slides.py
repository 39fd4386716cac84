"""LLM response -> slide deck text"""

import re
from typing import List

from pydantic import BaseModel


DEFAULT_TITLE = "Generated Presentation"

_SLIDE_HEADING = re.compile(r"^#{1,2}\s+")
_NUMBERED_ITEM = re.compile(r"^\d+\.\s+")


class SlideData(BaseModel):
    """One slide: heading plus body text"""
    title: str
    content: str = ""


class PresentationData(BaseModel):
    """Deck model typed into the presentation wizard"""
    title: str
    slides: List[SlideData]


def _is_slide_heading(line: str) -> bool:
    return bool(_SLIDE_HEADING.match(line) or _NUMBERED_ITEM.match(line))


def _strip_heading(line: str) -> str:
    return _NUMBERED_ITEM.sub("", _SLIDE_HEADING.sub("", line))


def parse_response_to_presentation(response: str) -> PresentationData:
    """
    Split a markdown-ish LLM answer into slides.

    The first non-blank line (heading marker removed) is the deck title.
    Every following line that starts with `#`, `##` or `N.` opens a new
    slide; other lines are appended to the current slide. Text before the
    first heading is dropped. If no heading is found the whole response
    becomes one "Content" slide.

    Args:
        response: Extracted LLM response text

    Returns:
        PresentationData
    """
    lines = [line for line in response.split("\n") if line.strip()]

    title = _strip_heading(lines[0].strip()) if lines else DEFAULT_TITLE
    slides: List[SlideData] = []
    current = None

    for raw in lines[1:]:
        line = raw.strip()
        if _is_slide_heading(line):
            if current is not None:
                slides.append(current)
            current = SlideData(title=_strip_heading(line), content="")
        elif current is not None:
            current.content += line + "\n"

    if current is not None:
        slides.append(current)

    if not slides:
        slides = [SlideData(title="Content", content=response)]

    return PresentationData(title=title, slides=slides)


def format_for_presenton(data: PresentationData) -> str:
    """Render the deck as the `# Title` / `## Slide n: ...` text pasted into Presenton"""
    formatted = f"# {data.title}\n\n"
    for index, slide in enumerate(data.slides, start=1):
        formatted += f"## Slide {index}: {slide.title}\n\n"
        formatted += f"{slide.content}\n\n"
    return formatted
