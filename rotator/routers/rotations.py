"""Rotation invocation endpoints."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from rotator.config import get_settings
from rotator.handler import RotationHandler

router = APIRouter(tags=["rotations"])


def get_rotation_handler() -> RotationHandler:
    """Build a rotation handler from cached settings."""
    return RotationHandler(get_settings())


@router.post("/rotations")
async def run_rotations(
    handler: Annotated[RotationHandler, Depends(get_rotation_handler)],
) -> JSONResponse:
    """Rotate credentials for every subject with a key-set URL."""
    response = await handler.run_batch()
    return JSONResponse(status_code=response.status_code, content=response.body)


@router.post("/credentials")
async def link_credential(
    payload: Annotated[dict[str, Any], Body()],
    handler: Annotated[RotationHandler, Depends(get_rotation_handler)],
) -> JSONResponse:
    """Create and link a credential for one subject from a supplied JWK."""
    response = await handler.link_credential(payload)
    return JSONResponse(status_code=response.status_code, content=response.body)
