from __future__ import annotations

from pydantic import BaseModel, ConfigDict, constr
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TransformRequest(ApiModel):
    url: constr(strip_whitespace=True, min_length=1, max_length=2048)
    persona: constr(strip_whitespace=True, min_length=1, max_length=64)


class TransformTextRequest(ApiModel):
    text: constr(min_length=1)
    persona: constr(strip_whitespace=True, min_length=1, max_length=64)


class OriginalContent(ApiModel):
    title: str
    content: str
    url: str
    word_count: int = 0


class PersonaSummary(ApiModel):
    id: str
    name: str
    description: str


class TokenUsage(ApiModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class TransformationResult(ApiModel):
    success: bool = True
    original_content: OriginalContent
    transformed_content: str
    persona: PersonaSummary
    usage: TokenUsage | None = None


class JobError(ApiModel):
    kind: str
    message: str


class JobView(ApiModel):
    """Client-facing job snapshot. Ownership fields never appear here."""

    job_id: str
    status: str
    stage: str | None = None
    progress: int = 0
    data: TransformationResult | None = None
    error: JobError | None = None
    created_at: str
    updated_at: str


class SubmitResponse(ApiModel):
    status: str
    job_id: str | None = None
    stage: str | None = None
    progress: int | None = None
    data: TransformationResult | None = None
    cached: bool = False
