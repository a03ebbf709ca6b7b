"""
Password hashing, session tokens and the FastAPI auth dependencies.

Passwords are hashed with bcrypt. Sessions are HS256 JWTs carrying the user
id, email and role; admin access is the ``role`` claim of a verified token.
"""

from dataclasses import dataclass
from datetime import timedelta

import bcrypt
import jwt
from fastapi import Depends, Request

from database import utcnow
from errors import AuthError, ForbiddenError

BCRYPT_ROUNDS = 10


@dataclass
class CurrentUser:
    id: str
    email: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    # Identity-provider accounts have no password
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class TokenIssuer:
    def __init__(self, secret: str, algorithm: str = "HS256", ttl_hours: int = 168):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = timedelta(hours=ttl_hours)

    def issue(self, user: dict) -> str:
        now = utcnow()
        payload = {
            "id": str(user["_id"]),
            "email": user.get("email"),
            "role": user.get("role") or "user",
            "iat": now,
            "exp": now + self.ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> CurrentUser:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.PyJWTError:
            raise ForbiddenError("Invalid token")
        if not claims.get("id"):
            raise ForbiddenError("Invalid token")
        return CurrentUser(id=claims["id"], email=claims.get("email") or "", role=claims.get("role") or "user")


def bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Access token required")
    return token.strip()


def get_current_user(request: Request) -> CurrentUser:
    token = bearer_token(request)
    return request.app.state.tokens.decode(token)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user
