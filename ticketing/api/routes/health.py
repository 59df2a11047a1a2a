import hmac
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from ticketing.core.config import settings
from ticketing.core.db import get_async_engine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def verify_health_token(x_health_token: Annotated[str | None, Header()] = None) -> None:
    """
    Verify the health check token if one is configured.

    When HEALTH_TOKEN is unset the probes stay public, which is what
    Kubernetes liveness/readiness checks expect.
    """
    expected_token = settings.health_token
    if not expected_token:
        return
    if not x_health_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Health token required",
        )
    if not hmac.compare_digest(x_health_token, expected_token):
        logger.warning(
            "Unauthorized health check attempt",
            extra={"security_event": True, "event_type": "HEALTH_ACCESS_DENIED"},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid health token",
        )


@router.get("/health", dependencies=[Depends(verify_health_token)])
def health() -> dict:
    """Basic liveness check."""
    return {"ok": True}


@router.get("/readyz", dependencies=[Depends(verify_health_token)])
async def readyz() -> JSONResponse:
    """Readiness probe: 200 when the database answers, 503 otherwise."""
    try:
        engine: AsyncEngine = get_async_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return JSONResponse(status_code=status.HTTP_200_OK, content={"ok": True, "db": "ok"})
    except Exception as exc:
        logger.error("Readiness check failed: %s", exc, exc_info=True)
        # Don't expose internal error details to callers
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "db": "unavailable"},
        )
