from __future__ import annotations

from fastapi import APIRouter, Request

from pagepersona.application import get_transform_service

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health(request: Request) -> dict:
    settings = request.app.state.settings
    return {"status": "ok", "environment": settings.app_env, **get_transform_service().health()}
