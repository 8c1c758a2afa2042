from fastapi import Header, HTTPException, Depends, Request
from .config import settings
from .db import get_admin_conn
from .security import hash_session_token
from datetime import datetime, timezone
from typing import Callable, Optional


def _extract_session_token(authorization: Optional[str], cookie_token: Optional[str]) -> str:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    if cookie_token:
        return cookie_token
    raise HTTPException(status_code=401, detail="missing token")


def get_session(request: Request, authorization: Optional[str] = Header(None)):
    # Cookie name is configurable, so read it from the request instead of a Cookie() param.
    token = _extract_session_token(authorization, request.cookies.get(settings.session_cookie_name))
    # Sessions are issued by the identity flow; the admin role can read them regardless of policies.
    with get_admin_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT s.id AS session_id, s.user_id, s.expires_at, s.is_active
                FROM auth_sessions s
                WHERE s.token = %s
                """,
                (hash_session_token(token),),
            )
            row = cur.fetchone()
            now = datetime.now(timezone.utc)
            if not row or not row["is_active"] or row["expires_at"] < now:
                raise HTTPException(status_code=401, detail="invalid token")
            return {"session_id": row["session_id"], "user_id": row["user_id"]}


def get_current_profile(session=Depends(get_session)):
    with get_admin_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, email, full_name, role, is_active
                FROM users
                WHERE id = %s
                """,
                (session["user_id"],),
            )
            row = cur.fetchone()
    if not row or not row["is_active"]:
        raise HTTPException(status_code=403, detail="forbidden")
    return {
        "user_id": str(row["id"]),
        "email": row["email"],
        "full_name": row["full_name"],
        "role": row["role"],
    }


def require(predicate: Callable[[str], bool]):
    """Dependency factory: the current profile, or 403 when the role predicate says no."""
    def _dep(profile=Depends(get_current_profile)):
        if not predicate(profile["role"]):
            raise HTTPException(status_code=403, detail="permission denied")
        return profile
    return _dep
