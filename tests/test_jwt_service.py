"""Tests for bearer-token verification."""
from datetime import timedelta

from jose import jwt

from eventcore.services.jwt_service import JWTService, TokenPayload

from helpers import mint_token


class TestVerifyToken:
    def test_valid_token_yields_claims(self):
        claims = JWTService().verify_token(mint_token("user-1", "org-1", "member", "m@acme.test"))

        assert isinstance(claims, TokenPayload)
        assert claims.org_id == "org-1"
        assert claims.sub == "user-1"
        assert not claims.is_admin

    def test_admin_role(self):
        assert JWTService().verify_token(mint_token("user-1", "org-1", "admin")).is_admin

    def test_expired_token(self):
        token = mint_token("user-1", "org-1", expires_in=timedelta(minutes=-1))
        assert JWTService().verify_token(token) is None

    def test_wrong_signing_key(self):
        token = jwt.encode(
            {"sub": "user-1", "org_id": "org-1", "role": "admin", "email": "a@acme.test"},
            "not-the-platform-key",
            algorithm="HS256"
        )
        assert JWTService().verify_token(token) is None

    def test_token_without_tenant_is_rejected(self):
        assert JWTService().verify_token(mint_token("user-1", None)) is None

    def test_unknown_role_is_rejected(self):
        assert JWTService().verify_token(mint_token("user-1", "org-1", "superuser")) is None

    def test_garbage(self):
        assert JWTService().verify_token("not-a-jwt") is None
