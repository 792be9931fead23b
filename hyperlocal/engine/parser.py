"""Parsing helpers for model output and feed markup."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from html import unescape
from typing import Any

from selectolax.lexbor import LexborHTMLParser

from .models import StructuredEvent

MIN_USEFUL_TEXT = 50
EVENTS_MARKER = "EVENTS_JSON:"

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_HEADLINE_PATTERN = re.compile(r"HEADLINE:\s*(.+?)(?:\n|CONTENT:)", re.IGNORECASE)
_CONTENT_PATTERN = re.compile(r"CONTENT:\s*([\s\S]+)", re.IGNORECASE)
_BULLET_PATTERN = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s", re.MULTILINE)

_CITATION_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\{['\"](?:title|url|snippet|author|published_at)['\"]:[^}]*(?:\}|$)", re.MULTILINE), ""),
    (re.compile(r"\.\("), "."),
    (re.compile(r"\.\s*\(\d+\)"), "."),
    (re.compile(r"\s*\(\d+\)"), ""),
    (re.compile(r"\s*\[\d+\]"), ""),
    (re.compile(r"\(\s*\)"), ""),
    (re.compile(r"\(\s*$", re.MULTILINE), ""),
    (re.compile("\u2014"), " - "),
    (re.compile("\u2013"), "-"),
    (re.compile(r"\n{3,}"), "\n\n"),
)


@dataclass(slots=True)
class Brief:
    headline: str
    content: str


def clean_citations(text: str) -> str:
    """Strip inline citation artifacts and normalise dashes."""

    cleaned = text
    for pattern, replacement in _CITATION_RULES:
        cleaned = pattern.sub(replacement, cleaned)
    return cleaned.strip()


def useful_text(text: str | None) -> str | None:
    """Return stripped text, or ``None`` when it is too short to be content."""

    if not text:
        return None
    stripped = text.strip()
    if len(stripped) < MIN_USEFUL_TEXT:
        return None
    return stripped


def count_bullets(text: str) -> int:
    return len(_BULLET_PATTERN.findall(text))


def split_events(text: str) -> tuple[str, list[StructuredEvent]]:
    """Separate the prose part from an ``EVENTS_JSON:`` array.

    A malformed array yields no events; the prose is still returned.
    """

    marker = text.find(EVENTS_MARKER)
    if marker == -1:
        return text.strip(), []
    prose = text[:marker].strip()
    tail = text[marker + len(EVENTS_MARKER):]
    fenced = _FENCED_JSON.search(tail)
    candidate = fenced.group(1) if fenced else tail
    payload = _first_json_array(candidate)
    if payload is None:
        return prose, []
    events = [StructuredEvent.from_mapping(item) for item in payload if isinstance(item, dict)]
    return prose, events


def _first_json_array(text: str) -> list[Any] | None:
    start = text.find("[")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                try:
                    data = json.loads(text[start:index + 1])
                except ValueError:
                    return None
                return data if isinstance(data, list) else None
    return None


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Find a JSON object in model output, fenced or bare. ``None`` when unparseable."""

    if not text:
        return None
    fenced = _FENCED_JSON.search(text)
    candidates = [fenced.group(1)] if fenced else []
    candidates.append(text)
    for candidate in candidates:
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end <= start:
            continue
        try:
            data = json.loads(candidate[start:end + 1])
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def parse_brief(text: str) -> Brief | None:
    """Parse ``HEADLINE: ... CONTENT: ...`` output."""

    headline = _HEADLINE_PATTERN.search(text)
    content = _CONTENT_PATTERN.search(text)
    if not content:
        return None
    title = headline.group(1).strip() if headline else ""
    return Brief(headline=clean_citations(title), content=clean_citations(content.group(1)))


def strip_html(markup: str | None) -> str:
    """Reduce feed HTML to plain text."""

    if not markup:
        return ""
    if "<" not in markup:
        return re.sub(r"\s+", " ", unescape(markup)).strip()
    tree = LexborHTMLParser(markup)
    for node in tree.css("script, style"):
        node.decompose()
    root = tree.body or tree.root
    text = root.text(separator=" ") if root is not None else ""
    return re.sub(r"\s+", " ", unescape(text)).strip()


__all__ = [
    "Brief",
    "EVENTS_MARKER",
    "MIN_USEFUL_TEXT",
    "clean_citations",
    "count_bullets",
    "extract_json_object",
    "parse_brief",
    "split_events",
    "strip_html",
    "useful_text",
]
