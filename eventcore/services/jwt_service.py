"""
Bearer-token verification for the administrative API.

Tokens are minted by the platform's auth provider. EventCore only checks
the signature and expiry and reads the tenant and role claims from them.
"""
from typing import Literal

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from eventcore.config import settings


class TokenPayload(BaseModel):
    """Claims EventCore relies on."""
    sub: str      # user_id
    org_id: str
    role: Literal["admin", "member"]
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class JWTService:
    """Service for verifying JWT tokens."""

    def verify_token(self, token: str) -> TokenPayload | None:
        """
        Verify and decode a JWT token.

        Returns:
            The validated claims, or None if the token is badly signed,
            expired, or lacks a tenant or role
        """
        try:
            claims = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM]
            )
            return TokenPayload.model_validate(claims)
        except (JWTError, ValidationError):
            return None
