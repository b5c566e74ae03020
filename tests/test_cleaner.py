from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from pagepersona.core.cleaner import (
    TRUNCATION_SEPARATOR,
    clean_text_for_llm,
    estimate_tokens,
    looks_like_html,
    smart_truncate,
)
from pagepersona.core.errors import InvalidRequest
from pagepersona.core.sanitizer import sanitize, sanitize_result
from pagepersona.core.schema import OriginalContent, PersonaSummary, TransformationResult

ARTICLE_HTML = """
<html>
  <head><title>Tides</title><script>var tracking = true;</script></head>
  <body>
    <nav>Home | About | Contact | Blog</nav>
    <div class="cookie-banner">We use cookies to improve your experience. Accept?</div>
    <article>
      <h1>How tides work</h1>
      <p>The moon pulls on the oceans and creates a bulge of water on the near side of the planet.</p>
      <p>A second bulge forms on the far side, which is why most coasts see two high tides a day.</p>
    </article>
    <footer>Copyright 2024 Ocean Facts. All rights reserved.</footer>
  </body>
</html>
"""


def test_html_detection():
    assert looks_like_html("<p>hello</p>")
    assert not looks_like_html("plain text with a < sign")


def test_clean_strips_page_chrome():
    cleaned = clean_text_for_llm(ARTICLE_HTML, title="Tides", url="https://example.com/tides")

    assert "The moon pulls on the oceans" in cleaned.text
    assert "second bulge" in cleaned.text
    assert "tracking" not in cleaned.text
    assert "Home | About" not in cleaned.text
    assert "cookies" not in cleaned.text.lower()
    assert cleaned.title == "Tides"
    assert cleaned.metrics.cleaned_length < cleaned.metrics.original_length
    assert cleaned.metrics.reduction_percent > 0
    assert not cleaned.metrics.was_truncated


def test_clean_removes_urls_emails_and_repeated_punctuation():
    raw = (
        "Read the full report at https://example.com/report today!!! "
        "Questions go to press@example.com and nowhere else.... "
        "The findings show steady growth across every region we measured."
    )
    cleaned = clean_text_for_llm(raw)
    assert "https://" not in cleaned.text
    assert "press@example.com" not in cleaned.text
    assert "!!!" not in cleaned.text
    assert "...." not in cleaned.text


def test_clean_rejects_short_content():
    with pytest.raises(InvalidRequest):
        clean_text_for_llm("Too short to matter.")


def test_clean_truncates_long_text_with_separator():
    body = "\n".join(f"Paragraph number {index} talks about something important." for index in range(400))
    cleaned = clean_text_for_llm(body, max_chars=2000)

    assert cleaned.metrics.was_truncated
    assert TRUNCATION_SEPARATOR in cleaned.text
    assert cleaned.text.startswith("Paragraph number 0")
    assert cleaned.text.rstrip().endswith("Paragraph number 399 talks about something important.")


def test_smart_truncate_keeps_head_and_tail():
    text = "a" * 800 + "b" * 400
    truncated = smart_truncate(text, 1000)
    head, tail = truncated.split(TRUNCATION_SEPARATOR)
    assert head == "a" * 800
    assert tail == "b" * 100
    assert smart_truncate("short", 1000) == "short"


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcde") == 2


def test_sanitize_strips_scripts_and_handlers():
    dirty = '<p onclick="steal()">Hello</p><script>alert(1)</script><a href="javascript:alert(1)">x</a>'
    clean = sanitize(dirty)
    assert "<script" not in clean
    assert "onclick" not in clean
    assert "javascript:" not in clean
    assert "Hello" in clean


def test_sanitize_adds_rel_to_links():
    clean = sanitize('<a href="https://example.com">link</a>')
    assert 'rel="noopener noreferrer"' in clean


def test_sanitize_result_covers_every_echoed_field():
    result = TransformationResult(
        original_content=OriginalContent(
            title="<img src=x onerror=alert(1)>Title",
            content="<script>x()</script>Body",
            url="https://example.com/",
            word_count=1,
        ),
        transformed_content="## Section<script>evil()</script>",
        persona=PersonaSummary(id="robot", name="Robot<script></script>", description="beep"),
    )
    clean = sanitize_result(result)
    assert "onerror" not in clean.original_content.title
    assert "<script" not in clean.original_content.content
    assert "<script" not in clean.transformed_content
    assert "<script" not in clean.persona.name
    assert clean.transformed_content.startswith("## Section")
