"""
Caller identity for the API.

Token verification happens upstream; the gateway forwards the verified
principal as `X-User-*` headers.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from swm.models.principal import Principal


def get_optional_principal(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_username: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None)
) -> Optional[Principal]:
    """The caller, or None for anonymous requests."""
    if not x_user_id or not x_user_role:
        return None
    return Principal(id=x_user_id, role=x_user_role, username=x_username, name=x_user_name)


def get_current_principal(principal: Optional[Principal] = Depends(get_optional_principal)) -> Principal:
    """The caller; 401 when no identity was supplied."""
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authentication required."}
        )
    return principal
