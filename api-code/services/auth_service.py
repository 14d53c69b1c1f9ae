from __future__ import annotations

import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt
from fastapi import Cookie, HTTPException, Response, status

from settings import Settings


logger = logging.getLogger("gitdeploy.auth")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def parse_operator_credentials(raw: str) -> Dict[str, str]:
    """Parse ``user:password`` pairs separated by commas."""
    credentials: Dict[str, str] = {}
    for entry in (raw or "").split(","):
        username, sep, password = entry.strip().partition(":")
        if not sep or not username.strip() or not password:
            continue
        credentials[username.strip()] = password
    return credentials


class AuthService:
    """Operator credentials, JWT auth cookies and the dependency resolving the current operator."""

    algorithm = "HS256"

    def __init__(self, settings: Settings):
        self.login_user = settings.login_user
        self.jwt_secret_key = settings.jwt_secret_key
        self.jwt_expire_minutes = int(settings.jwt_expire_minutes or 60)
        self.cookie_name = settings.auth_cookie_name
        self.cookie_secure = bool(settings.auth_cookie_secure)
        self.cookie_domain = (settings.auth_cookie_domain or "").strip() or None

        if not self.jwt_secret_key or self.jwt_secret_key == "change-me":
            raise RuntimeError("JWT_SECRET_KEY must be configured with a non-default value.")

        self.credentials = parse_operator_credentials(settings.operator_credentials)
        if settings.login_password:
            self.credentials[self.login_user] = settings.login_password

    @property
    def admin_users(self) -> Tuple[str, ...]:
        return (self.login_user,)

    def is_admin(self, username: str) -> bool:
        return username == self.login_user

    def verify_credentials(self, username: str, password: str) -> bool:
        expected = self.credentials.get(username)
        if expected is None:
            return False
        return hmac.compare_digest(expected.encode("utf-8"), (password or "").encode("utf-8"))

    def create_access_token(self, subject: str) -> Tuple[str, datetime]:
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(minutes=self.jwt_expire_minutes)
        payload = {
            "sub": subject,
            "role": "admin" if self.is_admin(subject) else "operator",
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self.jwt_secret_key, algorithm=self.algorithm)
        return token, expires_at

    def set_auth_cookie(self, response: Response, token: str, expires_at: Optional[datetime] = None) -> None:
        max_age = self.jwt_expire_minutes * 60
        response.set_cookie(
            key=self.cookie_name,
            value=token,
            httponly=True,
            secure=self.cookie_secure,
            samesite="lax",
            max_age=max_age,
            expires=int(expires_at.timestamp()) if expires_at else max_age,
            domain=self.cookie_domain,
            path="/",
        )

    def clear_auth_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.cookie_name,
            domain=self.cookie_domain,
            path="/",
        )

    def decode_subject(self, token: Optional[str]) -> str:
        if not token:
            raise _unauthorized("Authentication cookie missing.")
        try:
            payload = jwt.decode(token, self.jwt_secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise _unauthorized("Authentication token expired.") from exc
        except jwt.InvalidTokenError as exc:
            raise _unauthorized("Invalid authentication token.") from exc
        return str(payload.get("sub") or "")

    def require_user(self, token: Optional[str]) -> Dict[str, Any]:
        subject = self.decode_subject(token)
        # operators removed from the configuration lose access immediately
        if subject not in self.credentials:
            logger.warning("Rejected token for unknown operator %s", subject)
            raise _unauthorized("Unknown authentication subject.")
        return {"username": subject, "is_admin": self.is_admin(subject)}

    def build_auth_dependency(self):
        async def dependency(
            auth_token: Optional[str] = Cookie(default=None, alias=self.cookie_name)
        ) -> Dict[str, Any]:
            return self.require_user(auth_token)

        return dependency
