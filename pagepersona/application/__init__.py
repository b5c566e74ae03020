"""Application services."""

from .transforms import (
    SubmitOutcome,
    TransformService,
    configure_transform_service,
    get_transform_service,
    reset_transform_state,
)

__all__ = [
    "SubmitOutcome",
    "TransformService",
    "configure_transform_service",
    "get_transform_service",
    "reset_transform_state",
]
