"""Test authentication utilities and owner resolution."""

from datetime import timedelta

import pytest
from jose import jwt

from diarysync.auth import AuthContext, create_access_token, decode_token
from diarysync.config import get_settings
from diarysync.errors import Unauthorized


class TestAuthUtilities:
    """Test authentication utility functions."""

    def test_create_and_decode_token(self):
        """Test JWT token creation and decoding."""
        settings = get_settings()

        token = create_access_token("usr_test123456", settings)
        assert isinstance(token, str)

        payload = decode_token(token, settings)
        assert payload["sub"] == "usr_test123456"
        assert payload["type"] == "access"
        assert "exp" in payload
        assert "iat" in payload

    def test_expired_token_rejected(self):
        settings = get_settings()
        token = create_access_token("usr_test123456", settings, expires_delta=timedelta(seconds=-1))

        with pytest.raises(Unauthorized):
            decode_token(token, settings)

    def test_token_signed_with_other_key_rejected(self):
        settings = get_settings()
        forged = jwt.encode({"sub": "usr_evil"}, "not-the-secret", algorithm=settings.jwt_algorithm)

        with pytest.raises(Unauthorized):
            decode_token(forged, settings)

    def test_auth_context(self):
        ctx = AuthContext(owner_id="usr_abc123")
        assert ctx.owner_id == "usr_abc123"
        assert "usr_abc123" in repr(ctx)


class TestOwnerResolution:
    """Test the bearer-token dependency through the API."""

    def test_no_token(self, client):
        response = client.get("/diaries")
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid user", "isSuccess": False}

    def test_garbage_token(self, client):
        response = client.get("/diaries", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["isSuccess"] is False

    def test_token_without_subject(self, client):
        settings = get_settings()
        token = jwt.encode({"type": "access"}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

        response = client.get("/diaries", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_valid_token(self, client, auth_headers):
        response = client.get("/diaries", headers=auth_headers)
        assert response.status_code == 200
