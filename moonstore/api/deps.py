"""Request dependencies, the caller's identity comes from the authenticating proxy."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException
from pydantic import BaseModel

from moonstore.constants import AUTH_ROLE_HEADER, AUTH_USER_HEADER
from moonstore.services.storage.models import UserRole


class AuthInfo(BaseModel):
    username: str
    role: UserRole = "user"


def get_current_user(
    x_auth_user: Annotated[str | None, Header(alias=AUTH_USER_HEADER)] = None,
    x_auth_role: Annotated[str | None, Header(alias=AUTH_ROLE_HEADER)] = None,
) -> AuthInfo:
    """The user the proxy says is calling, 401 if there isn't one."""
    username = (x_auth_user or "").strip()
    if not username:
        raise HTTPException(status_code=401, detail="Unauthorized")

    role = (x_auth_role or "user").strip().lower()
    if role not in ("user", "admin", "owner"):
        role = "user"
    return AuthInfo(username=username, role=role)  # type: ignore[arg-type] Checked above


def get_current_admin(user: Annotated[AuthInfo, Depends(get_current_user)]) -> AuthInfo:
    """Admins and owners only, 403 for everyone else."""
    if user.role not in ("admin", "owner"):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


CurrentUser = Annotated[AuthInfo, Depends(get_current_user)]
CurrentAdmin = Annotated[AuthInfo, Depends(get_current_admin)]
