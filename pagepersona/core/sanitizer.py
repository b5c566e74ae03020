"""HTML sanitisation for model output and echoed source content."""
from __future__ import annotations

import nh3

from pagepersona.core.schema import TransformationResult


ALLOWED_TAGS = set(nh3.ALLOWED_TAGS) | {"img"}
ALLOWED_ATTRIBUTES = {
    "img": {"src", "alt", "title", "width", "height"},
    "a": {"href", "title"},
}
ALLOWED_SCHEMES = {"http", "https", "mailto"}


def sanitize(content: str | None) -> str:
    """Strip scripts, handlers and unknown markup while keeping formatting."""

    if not content or not isinstance(content, str):
        return ""
    return nh3.clean(
        content,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        url_schemes=ALLOWED_SCHEMES,
        link_rel="noopener noreferrer",
    )


def sanitize_result(result: TransformationResult) -> TransformationResult:
    original = result.original_content.model_copy(
        update={
            "title": sanitize(result.original_content.title),
            "content": sanitize(result.original_content.content),
        }
    )
    persona = result.persona.model_copy(
        update={
            "name": sanitize(result.persona.name),
            "description": sanitize(result.persona.description),
        }
    )
    return result.model_copy(
        update={
            "transformed_content": sanitize(result.transformed_content),
            "original_content": original,
            "persona": persona,
        }
    )
