# src/codable_bff/session_data.py

import time
import typing

from jose import JWTError, jwt
from pydantic import BaseModel

from .hosted_service import TokenGrant


class Session(BaseModel):
    """
    The browser's record of an authenticated user.
    Tokens stay server-side; only a session cookie id goes to the browser.
    """
    user_id: str
    email: typing.Optional[str] = None
    email_verified: bool = False
    expires_at: typing.Optional[int] = None
    access_token: str
    refresh_token: typing.Optional[str] = None
    full_name: typing.Optional[str] = None

    def is_expired(self, now: typing.Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at

    def public_view(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "email_verified": self.email_verified,
            "expires_at": self.expires_at,
            "full_name": self.full_name,
        }

    @classmethod
    def from_user(cls, user: dict, access_token: str, refresh_token: typing.Optional[str] = None,
                  expires_at: typing.Optional[int] = None) -> "Session":
        metadata = user.get("user_metadata") or {}
        return cls(
            user_id=user.get("id") or _token_claims(access_token).get("sub", ""),
            email=user.get("email"),
            email_verified=bool(user.get("email_confirmed_at") or user.get("confirmed_at")),
            expires_at=expires_at if expires_at is not None else token_expiry(access_token),
            access_token=access_token,
            refresh_token=refresh_token,
            full_name=metadata.get("full_name"),
        )

    @classmethod
    def from_grant(cls, grant: TokenGrant) -> "Session":
        expires_at = grant.expires_at
        if expires_at is None and grant.expires_in is not None:
            expires_at = int(time.time()) + grant.expires_in
        return cls.from_user(grant.user or {}, grant.access_token, grant.refresh_token, expires_at)


class PendingSignup(BaseModel):
    """
    Sign-up details held between magic-link issuance and the click-through
    that materializes the account. At most one per browser.
    """
    email: str
    full_name: str
    password: str


def _token_claims(access_token: str) -> dict:
    try:
        return jwt.get_unverified_claims(access_token)
    except JWTError:
        return {}


def token_expiry(access_token: str) -> typing.Optional[int]:
    """Reads `exp` from an access token without verifying it; the service validates tokens."""
    claims = _token_claims(access_token)
    exp = claims.get("exp")
    return int(exp) if exp is not None else None
