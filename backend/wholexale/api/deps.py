"""
Shared FastAPI dependencies.

WHAT: Caller identity for REST and streaming endpoints
WHY: Authentication is an upstream collaborator; the offer API only needs
     the authenticated user id it forwards
HOW: Read X-User-Id (REST) or user_id query parameter (SSE/WebSocket)
"""

from typing import Optional

from fastapi import Header, Query

from ..utils.exceptions import AuthenticationRequiredException


def _clean(user_id: Optional[str]) -> str:
    if not user_id or not user_id.strip():
        raise AuthenticationRequiredException()
    return user_id.strip()


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """User id from the X-User-Id header set by the auth gateway."""
    return _clean(x_user_id)


async def get_query_user_id(user_id: Optional[str] = Query(default=None, max_length=100)) -> str:
    """User id from the query string, for clients that cannot set headers."""
    return _clean(user_id)
