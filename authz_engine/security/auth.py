from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
BEARER_PREFIX = "Bearer"


def extract_user_id(request: Request) -> str | None:
    """
    Demo auth: extract the bearer token and treat it as the user ID.

    - Input: `Authorization: Bearer <user id>`
    - Returns None when the header is absent; the caller decides whether that is a 401.
    - Production behavior (documented only): validate a session or token and resolve the user ID from it.
    """

    raw = request.headers.get(AUTHORIZATION_HEADER)
    if not raw:
        logger.info("Missing Authorization header path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{BEARER_PREFIX} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {AUTHORIZATION_HEADER}. Expected '{BEARER_PREFIX} <token>'.",
        )

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {AUTHORIZATION_HEADER}. Missing token after '{BEARER_PREFIX}'.",
        )

    return token
