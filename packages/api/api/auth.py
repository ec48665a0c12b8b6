"""Caller identity dependency.

Authentication happens upstream: the gateway verifies the session and
forwards the user's identity in ``X-User-ID`` / ``X-User-Email`` headers.
"""

from fastapi import Header, HTTPException, status

from chatclient.models import ChatUser


async def require_user(
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
) -> ChatUser:
    """Return the calling user from the gateway identity headers.

    Raises:
        HTTPException 401 if no user id was forwarded.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    return ChatUser(id=user_id, email=(x_user_email or "").strip())
