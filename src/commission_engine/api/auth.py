"""Shared-secret authentication for write endpoints."""

import hmac

from fastapi import HTTPException, Request

from .config import settings


async def verify_secret(request: Request):
    """Require ``X-CE-Secret`` to match CE_API_SECRET when one is configured."""
    if not settings.api_secret:
        return True

    secret = request.headers.get("X-CE-Secret")
    if secret and hmac.compare_digest(secret, settings.api_secret):
        return True

    raise HTTPException(
        status_code=401,
        detail={"success": False, "error": "auth_error", "detail": "Invalid or missing authentication"},
    )
