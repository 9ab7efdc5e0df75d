"""
Taskboard Backend — Identity Dependencies
===========================================

What:  FastAPI dependencies resolving the authenticated principal.
How:   The upstream gateway verifies credentials and forwards the user id in
       the X-User-ID header. The service trusts it and only checks that it is
       a well-formed UUID.
Who:   Every protected route; accept uses the optional variant.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import Header

from taskboard.exceptions import UnauthenticatedError

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-ID"


def _parse_user_id(raw: Optional[str]) -> Optional[UUID]:
    if raw is None or not raw.strip():
        return None
    try:
        return UUID(raw.strip())
    except ValueError:
        logger.warning("Rejected malformed %s header", USER_ID_HEADER)
        raise UnauthenticatedError(message=f"{USER_ID_HEADER} must be a valid UUID")


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER),
) -> UUID:
    """Principal of a protected route. Missing or malformed → 401."""
    user_id = _parse_user_id(x_user_id)
    if user_id is None:
        raise UnauthenticatedError()
    return user_id


async def get_optional_user_id(
    x_user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER),
) -> Optional[UUID]:
    """Principal if supplied. A malformed header is still a 401."""
    return _parse_user_id(x_user_id)
