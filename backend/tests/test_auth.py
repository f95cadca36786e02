"""
Tests for bearer-token verification.
"""

import pytest
from datetime import timedelta

from jose import jwt

from config import get_settings
from services.auth import create_access_token, decode_token, verify_token


# ============== Auth Service Unit Tests ==============


class TestAuthService:
    """Unit tests for auth service functions."""

    def test_create_access_token_with_custom_expiry(self):
        """Test creating token with custom expiration."""
        token = create_access_token(456, expires_delta=timedelta(hours=1))
        assert verify_token(token) == 456

    def test_verify_invalid_token(self):
        assert verify_token("invalid.jwt.token") is None

    def test_verify_expired_token(self):
        """Test verifying an expired token returns None."""
        token = create_access_token(999, expires_delta=timedelta(seconds=-1))
        assert verify_token(token) is None

    def test_token_type_is_checked(self):
        token = create_access_token(7)
        assert decode_token(token)["type"] == "access"
        assert decode_token(token, expected_type="refresh") is None

    def test_non_numeric_subject_is_rejected(self):
        settings = get_settings()
        token = jwt.encode(
            {"sub": "alice", "type": "access"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM
        )
        assert verify_token(token) is None

    def test_foreign_signature_is_rejected(self):
        token = jwt.encode({"sub": "1", "type": "access"}, "someone-elses-key", algorithm="HS256")
        assert verify_token(token) is None


class TestCurrentUser:
    """get_current_user via a protected endpoint."""

    @pytest.mark.asyncio
    async def test_missing_token(self, client, couple_chat):
        response = await client.get(f"/api/v1/chats/{couple_chat.id}/imports")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_token_for_deleted_user(self, client, couple_chat):
        headers = {"Authorization": f"Bearer {create_access_token(987654)}"}
        response = await client.get(f"/api/v1/chats/{couple_chat.id}/imports", headers=headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_token(self, client, couple_chat, alice_headers):
        response = await client.get(f"/api/v1/chats/{couple_chat.id}/imports", headers=alice_headers)
        assert response.status_code == 200
