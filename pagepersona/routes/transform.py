from __future__ import annotations

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from pagepersona.application import SubmitOutcome, get_transform_service
from pagepersona.core.errors import InvalidRequest, JobNotFound, QuotaExceeded, TransformError
from pagepersona.core.schema import TransformRequest, TransformTextRequest

router = APIRouter(prefix="/transform", tags=["transform"])


def _raise_http(exc: TransformError) -> None:
    if isinstance(exc, JobNotFound):
        raise HTTPException(status_code=404, detail=exc.to_dict()) from exc
    if isinstance(exc, QuotaExceeded):
        raise HTTPException(status_code=429, detail=exc.to_dict()) from exc
    if isinstance(exc, InvalidRequest):
        raise HTTPException(status_code=400, detail=exc.to_dict()) from exc
    raise HTTPException(status_code=502, detail=exc.to_dict()) from exc


def _respond(outcome: SubmitOutcome) -> JSONResponse:
    return JSONResponse(outcome.to_dict(), status_code=outcome.http_status)


def _require_admin_routes(request: Request) -> None:
    settings = request.app.state.settings
    if settings.is_production:
        raise HTTPException(status_code=404, detail="Not Found")


@router.get("/personas")
async def get_personas() -> dict:
    service = get_transform_service()
    return {"personas": service.list_personas()}


@router.post("")
async def transform_url(
    payload: TransformRequest,
    x_user_id: str | None = Header(default=None),
    x_user_membership: str | None = Header(default=None),
) -> JSONResponse:
    """Admit a webpage transformation and return its job status."""
    service = get_transform_service()
    try:
        outcome = await service.submit_url(
            payload.url,
            payload.persona,
            user_id=x_user_id,
            membership=x_user_membership,
        )
    except TransformError as exc:
        _raise_http(exc)
    return _respond(outcome)


@router.post("/text")
async def transform_text(
    payload: TransformTextRequest,
    x_user_id: str | None = Header(default=None),
    x_user_membership: str | None = Header(default=None),
) -> JSONResponse:
    service = get_transform_service()
    try:
        outcome = await service.submit_text(
            payload.text,
            payload.persona,
            user_id=x_user_id,
            membership=x_user_membership,
        )
    except TransformError as exc:
        _raise_http(exc)
    return _respond(outcome)


@router.get("/jobs/{job_id}")
async def get_job(job_id: str) -> dict:
    service = get_transform_service()
    try:
        return service.poll(job_id)
    except JobNotFound as exc:
        _raise_http(exc)


@router.get("/usage")
async def get_usage(x_user_id: str | None = Header(default=None)) -> dict:
    if not x_user_id:
        raise HTTPException(status_code=400, detail={"kind": "InvalidRequest", "message": "X-User-Id header is required"})
    service = get_transform_service()
    return service.usage.usage_for(x_user_id)


@router.get("/cache/stats")
async def get_cache_stats(request: Request) -> dict:
    _require_admin_routes(request)
    service = get_transform_service()
    return service.cache_stats()


@router.delete("/cache")
async def clear_cache(request: Request) -> dict:
    _require_admin_routes(request)
    service = get_transform_service()
    return service.clear_cache()
