import os
from typing import Annotated

from fastapi import Depends, Header, HTTPException


def _admin_token() -> str:
    return os.getenv("ADMIN_TOKEN", "")


def _api_key() -> str:
    return os.getenv("GRADING_API_KEY", "")


def require_admin(
    x_admin_token: Annotated[str | None, Header(alias="x-admin-token")] = None,
) -> None:
    """
    Strict admin-only guard. Requires the X-Admin-Token header to match ADMIN_TOKEN.
    """
    want = _admin_token()
    if not want:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured on server.")
    if x_admin_token != want:
        raise HTTPException(status_code=401, detail="Unauthorized.")


def require_client(
    x_api_key: Annotated[str | None, Header(alias="x-api-key")] = None,
    x_admin_token: Annotated[str | None, Header(alias="x-admin-token")] = None,
) -> None:
    """
    Client/API guard. Accepts either:
      - X-Admin-Token that matches ADMIN_TOKEN (admins always allowed), or
      - X-Api-Key that matches GRADING_API_KEY.
    """
    admin = _admin_token()
    if admin and x_admin_token == admin:
        return

    key = _api_key()
    if not key:
        raise HTTPException(status_code=500, detail="GRADING_API_KEY not configured on server.")
    if x_api_key != key:
        raise HTTPException(status_code=401, detail="Unauthorized.")


def is_admin(
    x_admin_token: Annotated[str | None, Header(alias="x-admin-token")] = None,
) -> bool:
    admin = _admin_token()
    return bool(admin) and x_admin_token == admin


def current_user_id(
    x_user_id: Annotated[str | None, Header(alias="x-user-id")] = None,
) -> str:
    """Caller identity, set by the upstream auth gateway."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity.")
    return x_user_id.strip()


def acting_user_id(
    user_id: Annotated[str, Depends(current_user_id)],
    admin: Annotated[bool, Depends(is_admin)],
) -> str | None:
    """User id to enforce ownership with; admins act on any attempt."""
    return None if admin else user_id
