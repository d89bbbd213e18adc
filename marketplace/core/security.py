from typing import Optional

from fastapi import Header, HTTPException


def get_current_user_id(x_user_id: Optional[int] = Header(default=None)) -> int:
    """
    Identity of the caller.

    Tokens are verified by the auth gateway in front of this service, which
    forwards the user id in the ``X-User-Id`` header.
    """
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id
