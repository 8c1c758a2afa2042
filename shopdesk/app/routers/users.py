from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
from psycopg.errors import UniqueViolation  # type: ignore
import json
import uuid
from ..db import get_conn, set_actor_context
from ..deps import require
from ..authz import can_manage_users
from ..logs import json_log
from ..security import hash_password
from ..validation import Email, FullName, Password, Role

router = APIRouter(prefix="/users", tags=["users"])


class UserIn(BaseModel):
    email: Email
    password: Password
    full_name: FullName
    role: Role


class UserUpdate(BaseModel):
    full_name: Optional[FullName] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class PasswordIn(BaseModel):
    password: Password


def _audit(cur, actor_id: str, action: str, user_id: str, details: dict):
    cur.execute(
        """
        INSERT INTO audit_logs (id, user_id, action, entity_type, entity_id, details)
        VALUES (gen_random_uuid(), %s, %s, 'user', %s, %s::jsonb)
        """,
        (actor_id, action, user_id, json.dumps(details, default=str)),
    )


@router.get("")
def list_users(profile=Depends(require(can_manage_users))):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, email, full_name, role, is_active, created_at
                FROM users
                ORDER BY full_name, email
                """
            )
            return {"users": cur.fetchall()}


@router.post("", status_code=201)
def create_user(data: UserIn, profile=Depends(require(can_manage_users))):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            try:
                cur.execute(
                    """
                    INSERT INTO users (id, email, hashed_password, full_name, role, is_active)
                    VALUES (gen_random_uuid(), %s, %s, %s, %s, true)
                    RETURNING id
                    """,
                    (data.email, hash_password(data.password), data.full_name, data.role),
                )
            except UniqueViolation:
                raise HTTPException(status_code=409, detail="email already exists")
            user_id = cur.fetchone()["id"]
            _audit(cur, profile["user_id"], "user_create", user_id, {"email": data.email, "role": data.role})
    json_log("info", "user.created", user_id=user_id, role=data.role, by_user_id=profile["user_id"])
    return {
        "id": user_id,
        "email": data.email,
        "full_name": data.full_name,
        "role": data.role,
        "is_active": True,
    }


@router.patch("/{user_id}")
def update_user(user_id: uuid.UUID, data: UserUpdate, profile=Depends(require(can_manage_users))):
    patch = data.model_dump(exclude_none=True)
    if str(user_id) == profile["user_id"] and patch.get("is_active") is False:
        raise HTTPException(status_code=400, detail="you cannot deactivate your own account")
    if not patch:
        return {"ok": True}
    fields = []
    params = []
    for k, v in patch.items():
        fields.append(f"{k} = %s")
        params.append(v)
    params.append(str(user_id))
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                f"""
                UPDATE users
                SET {', '.join(fields)}
                WHERE id = %s
                RETURNING id
                """,
                params,
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="user not found")
            if patch.get("is_active") is False:
                cur.execute(
                    "UPDATE auth_sessions SET is_active = false WHERE user_id = %s AND is_active = true",
                    (str(user_id),),
                )
            _audit(cur, profile["user_id"], "user_update", str(user_id), patch)
    json_log("info", "user.updated", user_id=str(user_id), fields=sorted(patch), by_user_id=profile["user_id"])
    return {"ok": True}


@router.post("/{user_id}/password")
def change_password(user_id: uuid.UUID, data: PasswordIn, profile=Depends(require(can_manage_users))):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE users SET hashed_password = %s WHERE id = %s RETURNING id",
                (hash_password(data.password), str(user_id)),
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="user not found")
            # Force re-login everywhere with the new password.
            cur.execute(
                "UPDATE auth_sessions SET is_active = false WHERE user_id = %s AND is_active = true",
                (str(user_id),),
            )
            _audit(cur, profile["user_id"], "user_password_change", str(user_id), {})
    json_log("info", "user.password_changed", user_id=str(user_id), by_user_id=profile["user_id"])
    return {"ok": True}
