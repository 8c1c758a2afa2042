import pytest
from fastapi import HTTPException

from shopdesk.app.authz import can_manage_products
from shopdesk.app.deps import _extract_session_token, require
from shopdesk.app.security import hash_session_token


def test_session_token_is_hashed_with_prefix():
    h = hash_session_token("abc")
    assert h.startswith("sha256:")
    assert h == hash_session_token("abc")
    assert h != hash_session_token("abd")


def test_extract_session_token_prefers_bearer_header():
    assert _extract_session_token("Bearer tok-1", "cookie-tok") == "tok-1"
    assert _extract_session_token(None, "cookie-tok") == "cookie-tok"


def test_extract_session_token_requires_some_token():
    with pytest.raises(HTTPException) as exc_info:
        _extract_session_token(None, None)
    assert exc_info.value.status_code == 401


def test_require_passes_profile_through_when_granted():
    dep = require(can_manage_products)
    profile = {"user_id": "u-1", "role": "manager"}
    assert dep(profile=profile) is profile


def test_require_denies_with_403():
    dep = require(can_manage_products)
    with pytest.raises(HTTPException) as exc_info:
        dep(profile={"user_id": "u-2", "role": "sales"})
    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "permission denied"
