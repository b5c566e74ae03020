"""Text cleaning and truncation ahead of language model calls.

Scraped pages and pasted text both pass through here. HTML input is parsed
with lxml and stripped of scripts, navigation, cookie banners and similar
chrome; the remaining text is normalised and, when it exceeds the character
budget, truncated so that the opening and a short tail both survive.
"""
from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field

from lxml import html as lxml_html
from lxml.etree import ParserError

from pagepersona.core.errors import InvalidRequest

logger = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 50
TRUNCATION_SEPARATOR = "\n\n[... middle content truncated for brevity ...]\n\n"

_HTML_PATTERN = re.compile(r"<[a-z][\s\S]*>", re.IGNORECASE)

_STRIP_TAGS = (
    "script", "style", "noscript", "iframe", "object", "embed",
    "nav", "header", "footer", "aside",
)
_STRIP_CLASSES = (
    "advertisement", "ads", "ad", "social-share", "social-sharing",
    "cookie-banner", "cookie-notice", "cookie-consent",
    "newsletter", "subscription-banner", "related-articles", "recommended",
)
_STRIP_FRAGMENTS = ("cookie", "banner", "popup", "modal", "overlay")

_BLOCK_TAGS = {
    "p", "div", "section", "article", "main", "li", "ul", "ol", "br", "tr",
    "table", "blockquote", "pre", "h1", "h2", "h3", "h4", "h5", "h6",
}

_BOILERPLATE_PATTERNS = [
    re.compile(r"\b(cookie|cookies|cookie policy|cookie notice|cookie consent)\b[^\n.!?]{0,100}[.!?]", re.IGNORECASE),
    re.compile(r"\b(privacy policy|terms of service|terms and conditions|legal notice)\b[^\n.!?]{0,100}[.!?]", re.IGNORECASE),
    re.compile(r"\b(subscribe|newsletter|sign up for|join our|follow us)\b[^\n.!?]{0,100}[.!?]", re.IGNORECASE),
    re.compile(r"\b(advertisement|sponsored content|ad choice|advertisements)\b[^\n.!?]{0,100}[.!?]", re.IGNORECASE),
    re.compile(r"\b(all rights reserved|copyright \d{4})\b[^\n]{0,100}", re.IGNORECASE),
    re.compile(r"\b(accept cookies|manage cookies|we use cookies)\b[^\n.!?]{0,200}[.!?]", re.IGNORECASE),
]


@dataclass(slots=True)
class CleanMetrics:
    original_length: int
    cleaned_length: int
    estimated_original_tokens: int
    estimated_cleaned_tokens: int
    was_truncated: bool

    @property
    def reduction_percent(self) -> float:
        if not self.original_length:
            return 0.0
        return round((self.original_length - self.cleaned_length) / self.original_length * 100, 2)

    @property
    def token_reduction(self) -> int:
        return self.estimated_original_tokens - self.estimated_cleaned_tokens


@dataclass(slots=True)
class CleanedText:
    text: str
    metrics: CleanMetrics
    title: str | None = None
    url: str | None = None
    headings: list[str] = field(default_factory=list)

    @property
    def word_count(self) -> int:
        return len(self.text.split())


def estimate_tokens(text: str) -> int:
    return -(-len(text) // 4)


def looks_like_html(value: str) -> bool:
    return bool(_HTML_PATTERN.search(value))


def _class_xpath(name: str) -> str:
    return f"contains(concat(' ', normalize-space(@class), ' '), ' {name} ')"


def _parse(markup: str):
    try:
        return lxml_html.fromstring(markup)
    except (ParserError, ValueError):
        return None


def extract_text_from_html(markup: str) -> str:
    root = _parse(markup)
    if root is None:
        return markup

    conditions = [f"self::{tag}" for tag in _STRIP_TAGS]
    conditions.extend(_class_xpath(name) for name in _STRIP_CLASSES)
    conditions.extend(f"contains(@class, '{fragment}')" for fragment in _STRIP_FRAGMENTS)
    conditions.append("contains(@id, 'cookie')")
    for element in root.xpath(f"//*[{' or '.join(conditions)}]"):
        if element.getparent() is not None:
            element.drop_tree()

    for element in root.iter():
        if isinstance(element.tag, str) and element.tag.lower() in _BLOCK_TAGS:
            element.tail = "\n" + (element.tail or "")

    bodies = root.xpath("//body")
    text = bodies[0].text_content() if bodies else ""
    if len(text.strip()) < MIN_CONTENT_LENGTH:
        text = root.text_content()
    return text


def extract_headings(markup: str) -> list[str]:
    root = _parse(markup)
    if root is None:
        return []
    headings = []
    for element in root.xpath("//h1|//h2|//h3|//h4|//h5|//h6"):
        text = " ".join(element.text_content().split())
        if text:
            headings.append(text)
    return headings


def _keep_line(line: str) -> bool:
    trimmed = line.strip()
    if not trimmed:
        return True
    if len(trimmed) < 10:
        return False
    separators = len(re.findall(r"[|•\->/\\]", trimmed))
    if separators > len(trimmed) * 0.3:
        return False
    upper = len(re.findall(r"[A-Z]", trimmed))
    if upper > len(trimmed) * 0.8 and len(trimmed) < 50:
        return False
    return True


def normalise_text(text: str) -> str:
    cleaned = html.unescape(text).replace("\xa0", " ")

    cleaned = re.sub(r"https?://\S+", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"www\.\S+", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\S+@\S+\.\S+", "", cleaned)

    for pattern in _BOILERPLATE_PATTERNS:
        cleaned = pattern.sub("", cleaned)

    cleaned = "\n".join(line for line in cleaned.split("\n") if _keep_line(line))

    cleaned = re.sub(r"[ \t]+", " ", cleaned)
    cleaned = re.sub(r"^[ \t]+", "", cleaned, flags=re.MULTILINE)
    cleaned = re.sub(r"^[\s\-=_*]{3,}$", "", cleaned, flags=re.MULTILINE)
    cleaned = re.sub(r"\n\s*\n\s*\n+", "\n\n", cleaned)

    cleaned = re.sub(r"\.{4,}", "...", cleaned)
    cleaned = re.sub(r"!{2,}", "!", cleaned)
    cleaned = re.sub(r"\?{2,}", "?", cleaned)
    cleaned = re.sub(r",{2,}", ",", cleaned)
    return cleaned.strip()


def smart_truncate(text: str, max_chars: int, preserve_start_ratio: float = 0.8) -> str:
    """Keep the head of ``text`` plus a short tail, joined by a marker."""

    if len(text) <= max_chars:
        return text
    start_chars = int(max_chars * preserve_start_ratio)
    end_chars = max(0, max_chars - start_chars - 100)
    tail = text[len(text) - end_chars:] if end_chars else ""
    return text[:start_chars] + TRUNCATION_SEPARATOR + tail


def clean_text_for_llm(
    raw: str,
    *,
    max_chars: int = 45000,
    preserve_start_ratio: float = 0.8,
    title: str | None = None,
    url: str | None = None,
    include_headings: bool = False,
    min_length: int = MIN_CONTENT_LENGTH,
) -> CleanedText:
    """Clean ``raw`` HTML or plain text for prompting.

    Raises :class:`InvalidRequest` when fewer than ``min_length`` characters
    survive cleaning.
    """

    raw = raw or ""
    is_html = looks_like_html(raw)
    extracted = extract_text_from_html(raw) if is_html else raw
    headings = extract_headings(raw) if include_headings and is_html else []

    cleaned = normalise_text(extracted)
    was_truncated = False
    if len(cleaned) > max_chars:
        cleaned = smart_truncate(cleaned, max_chars, preserve_start_ratio)
        was_truncated = True

    metrics = CleanMetrics(
        original_length=len(raw),
        cleaned_length=len(cleaned),
        estimated_original_tokens=estimate_tokens(raw),
        estimated_cleaned_tokens=estimate_tokens(cleaned),
        was_truncated=was_truncated,
    )
    logger.info(
        "Text cleaning completed: %d -> %d chars (%.1f%% reduction, truncated=%s)",
        metrics.original_length,
        metrics.cleaned_length,
        metrics.reduction_percent,
        was_truncated,
    )

    if len(cleaned) < min_length:
        raise InvalidRequest(
            f"Content is too short for meaningful transformation. Please provide at least {min_length} characters."
        )

    return CleanedText(text=cleaned, metrics=metrics, title=title, url=url, headings=headings)
