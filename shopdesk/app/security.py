import hashlib
from passlib.context import CryptContext

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def hash_session_token(token: str) -> str:
    # Sessions are stored as a one-way hash so a DB leak doesn't immediately grant access.
    return "sha256:" + hashlib.sha256(token.encode("utf-8")).hexdigest()
