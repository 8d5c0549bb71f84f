"""API dependencies."""

import logging
import secrets
from uuid import UUID

from fastapi import Header, HTTPException

from taskhub.config import Environment, settings
from taskhub.engine import TaskEngine
from taskhub.queue import get_task_queue

logger = logging.getLogger("taskhub.api")


def get_engine() -> TaskEngine:
    """Request-scoped engine over the process-wide session factory and queue."""
    return TaskEngine(queue=get_task_queue())


async def get_user_id(
    x_user_id: str | None = Header(None, alias="X-User-ID"),
) -> UUID:
    """
    Extract the calling user from the request.

    Identity is established upstream (gateway or auth service) and forwarded
    in the X-User-ID header.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user ID")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid user ID format")


def _dev_bypass_active() -> bool:
    return settings.allow_insecure_dev and settings.env == Environment.DEVELOPMENT


def _presented_key(authorization: str | None, x_api_key: str | None) -> str | None:
    """Token from ``Authorization: Bearer`` (preferred) or ``X-API-Key``."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return x_api_key or None


async def verify_api_key(
    authorization: str | None = Header(None),
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> None:
    """
    Check the caller presented the shared service token.

    With no token configured every request is refused (503) unless the dev
    bypass is on.
    """
    if _dev_bypass_active():
        return

    presented = _presented_key(authorization, x_api_key)
    if presented is None:
        raise HTTPException(status_code=401, detail="API key required")

    if not settings.api_key:
        logger.error("Rejecting request: TASKHUB_API_KEY is not configured")
        raise HTTPException(status_code=503, detail="API key not configured on server")

    if not secrets.compare_digest(presented, settings.api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")


def validate_auth_config() -> None:
    """
    Refuse to start with the dev bypass enabled outside development.

    Raises:
        RuntimeError: If ``allow_insecure_dev`` is set in staging or production
    """
    if settings.allow_insecure_dev and settings.env != Environment.DEVELOPMENT:
        raise RuntimeError(
            f"allow_insecure_dev is only permitted in development, not {settings.env.value}. "
            "Unset TASKHUB_ALLOW_INSECURE_DEV."
        )

    if _dev_bypass_active():
        logger.warning("API key check disabled (TASKHUB_ALLOW_INSECURE_DEV=true)")
    else:
        logger.info(f"API key check enabled for {settings.env.value}")
