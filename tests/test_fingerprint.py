from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from pagepersona.core.errors import InvalidRequest
from pagepersona.core.fingerprint import fingerprint, job_id_for
from pagepersona.core.urls import ensure_public_url, normalize_url


def test_fingerprint_is_deterministic():
    first = fingerprint("url", "https://example.com/article", "eli5")
    second = fingerprint("url", "https://example.com/article", "eli5")
    assert first == second
    assert len(first) == 64


def test_fingerprint_normalizes_equivalent_urls():
    base = fingerprint("url", "https://example.com/article", "eli5")
    assert fingerprint("url", "HTTPS://Example.COM:443/article#comments", "eli5") == base
    assert fingerprint("url", "example.com/article", " ELI5 ") == base


def test_fingerprint_distinguishes_persona_and_kind():
    url_fp = fingerprint("url", "https://example.com/", "eli5")
    assert fingerprint("url", "https://example.com/", "robot") != url_fp
    assert fingerprint("text", "https://example.com/", "eli5") != url_fp


def test_texts_sharing_a_prefix_do_not_collide():
    prefix = "The quick brown fox jumps over the lazy dog. " * 20
    first = fingerprint("text", prefix + "Ending one.", "robot")
    second = fingerprint("text", prefix + "Ending two.", "robot")
    assert first != second


def test_text_fingerprint_ignores_surrounding_whitespace():
    assert fingerprint("text", "  hello world \n", "robot") == fingerprint("text", "hello world", "robot")


@pytest.mark.parametrize(
    ("kind", "content", "persona"),
    [
        ("url", "", "eli5"),
        ("text", "   ", "eli5"),
        ("url", "https://example.com", ""),
        ("pdf", "whatever", "eli5"),
        ("url", "ftp://example.com/file", "eli5"),
    ],
)
def test_fingerprint_rejects_invalid_input(kind, content, persona):
    with pytest.raises(InvalidRequest):
        fingerprint(kind, content, persona)


def test_job_id_embeds_attempt():
    fp = fingerprint("url", "https://example.com/", "eli5")
    assert job_id_for(fp, 1) == f"{fp[:32]}-1"
    assert job_id_for(fp, 1) != job_id_for(fp, 2)


def test_normalize_url_defaults():
    assert normalize_url("Example.com") == "https://example.com/"
    assert normalize_url("http://example.com:80/a?b=1") == "http://example.com/a?b=1"


@pytest.mark.parametrize(
    "url",
    ["http://localhost:8000/", "http://127.0.0.1/", "http://10.0.0.5/admin", "http://printer.local/"],
)
def test_ensure_public_url_rejects_private_hosts(url):
    with pytest.raises(InvalidRequest):
        ensure_public_url(url)
