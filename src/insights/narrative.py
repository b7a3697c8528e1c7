"""
Best-effort extraction of focus suggestions from narrative text.

The insight service writes prose. Two shapes are recognized:

1. A heading mentioning focus/recommendations followed by bullet (•, -, *) or
   numbered (1. / 1)) lines.
2. Free sentences containing "focus on ...", "recommend ..." or "suggest ...".

Anything else is ignored. The result is lossy by nature.
"""

from __future__ import annotations

import re

HEADING_RE = re.compile(r"^\s*(#{1,6}\s*)?[\w\s\-]*(focus|recommend|suggest|priorit)[\w\s\-]*:?\s*$", re.IGNORECASE)
ITEM_RE = re.compile(r"^\s*(?:[•\-\*]|\d+[\.\)])\s+(?P<item>.+)$")
PHRASE_RE = re.compile(
    r"\b(?:focus(?:ing)?\s+on|recommend(?:s|ed)?(?:\s+(?:working\s+on|practicing|practising))?|"
    r"suggest(?:s|ed)?(?:\s+(?:working\s+on|practicing|practising))?)\s+(?P<item>[^.;:!?\n]+)",
    re.IGNORECASE,
)

MAX_ITEM_LENGTH = 120
MIN_ITEM_LENGTH = 3


def _clean(item: str) -> str:
    item = re.sub(r"[*_`]+", "", item)
    item = re.sub(r"\s+", " ", item).strip()
    item = item.strip(" .,;:-")
    if len(item) > MAX_ITEM_LENGTH:
        item = item[:MAX_ITEM_LENGTH].rsplit(" ", 1)[0]
    return item


def _is_heading(line: str) -> bool:
    stripped = line.strip()
    if ITEM_RE.match(line) or not HEADING_RE.match(line):
        return False
    return stripped.startswith("#") or stripped.endswith(":")


def parse_narrative(text: str | None) -> list[str]:
    """
    Extract candidate focus areas from narrative text, in order of appearance.

    Duplicates (case-insensitive) are dropped. Empty or unparseable text
    yields an empty list.
    """
    if not text or not text.strip():
        return []

    items: list[str] = []
    in_section = False
    for line in text.splitlines():
        if not line.strip():
            continue
        if _is_heading(line):
            in_section = True
            continue
        bullet = ITEM_RE.match(line)
        if bullet and in_section:
            items.append(bullet.group("item"))
            continue
        if not bullet:
            in_section = False
        for phrase in PHRASE_RE.finditer(line):
            items.append(phrase.group("item"))

    result: list[str] = []
    seen: set[str] = set()
    for raw in items:
        item = _clean(raw)
        if len(item) < MIN_ITEM_LENGTH:
            continue
        key = item.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result
