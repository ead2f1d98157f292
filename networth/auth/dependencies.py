"""
Authentication dependencies for FastAPI routes.

Identity is established by an upstream gateway and forwarded in the
X-User-ID header; routes only need the caller's user id.
"""
import uuid
from typing import Optional

from fastapi import Header

from networth.exceptions import AuthenticationError


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
) -> uuid.UUID:
    """
    Get the current caller's user id.

    Args:
        x_user_id: Value of the X-User-ID header

    Returns:
        Caller's user id

    Raises:
        AuthenticationError: If the header is missing or not a UUID
    """
    if not x_user_id:
        raise AuthenticationError("Authentication required")

    try:
        return uuid.UUID(x_user_id.strip())
    except ValueError:
        raise AuthenticationError("Invalid user id", details={"x_user_id": x_user_id})
