"""
test_token_service.py — Tests for Google token freshness and refresh

Covers the 5-minute buffer, missing token/refresh paths, successful
refresh persistence (including rotated refresh tokens), and failure
leaving stored tokens untouched.

Called by: pytest
Depends on: app.services.token_service, conftest fixtures
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.services.token_service import (
    _refresh_access_token,
    get_valid_token,
    is_token_fresh,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestIsTokenFresh:
    def test_none_is_stale(self):
        assert is_token_fresh(None, NOW) is False

    def test_far_future_is_fresh(self):
        assert is_token_fresh(NOW + timedelta(hours=1), NOW) is True

    def test_inside_buffer_is_stale(self):
        assert is_token_fresh(NOW + timedelta(minutes=4), NOW) is False

    def test_exactly_buffer_is_stale(self):
        assert is_token_fresh(NOW + timedelta(minutes=5), NOW) is False

    def test_naive_expiry_treated_as_utc(self):
        naive = (NOW + timedelta(hours=1)).replace(tzinfo=None)
        assert is_token_fresh(naive, NOW) is True


class TestGetValidToken:
    @pytest.mark.asyncio
    async def test_fresh_token_returned_without_refresh(self, db_session, test_user):
        with patch("app.services.token_service._refresh_access_token", new_callable=AsyncMock) as m:
            token = await get_valid_token(test_user, db_session)
        assert token == "access-token"
        m.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_access_token(self, db_session, test_user):
        test_user.google_access_token = None
        assert await get_valid_token(test_user, db_session) is None

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token(self, db_session, test_user):
        test_user.google_token_expiry = datetime.now(timezone.utc) - timedelta(minutes=1)
        test_user.google_refresh_token = None
        assert await get_valid_token(test_user, db_session) is None

    @pytest.mark.asyncio
    async def test_refresh_persists_new_token(self, db_session, test_user):
        test_user.google_token_expiry = datetime.now(timezone.utc) + timedelta(minutes=2)
        db_session.commit()

        with patch(
            "app.services.token_service._refresh_access_token",
            new_callable=AsyncMock,
            return_value=("new-access", 3600, "new-refresh"),
        ):
            token = await get_valid_token(test_user, db_session)

        assert token == "new-access"
        db_session.refresh(test_user)
        assert test_user.google_access_token == "new-access"
        assert test_user.google_refresh_token == "new-refresh"
        assert test_user.google_token_expiry > datetime.now(timezone.utc) + timedelta(minutes=50)

    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token_when_not_rotated(self, db_session, test_user):
        test_user.google_token_expiry = datetime.now(timezone.utc) - timedelta(minutes=1)
        db_session.commit()

        with patch(
            "app.services.token_service._refresh_access_token",
            new_callable=AsyncMock,
            return_value=("new-access", 3600, None),
        ):
            await get_valid_token(test_user, db_session)

        db_session.refresh(test_user)
        assert test_user.google_refresh_token == "refresh-token"

    @pytest.mark.asyncio
    async def test_refresh_failure_leaves_tokens(self, db_session, test_user):
        expired = datetime.now(timezone.utc) - timedelta(minutes=1)
        test_user.google_token_expiry = expired
        db_session.commit()

        with patch(
            "app.services.token_service._refresh_access_token",
            new_callable=AsyncMock,
            return_value=None,
        ):
            token = await get_valid_token(test_user, db_session)

        assert token is None
        db_session.refresh(test_user)
        assert test_user.google_access_token == "access-token"
        assert test_user.google_refresh_token == "refresh-token"


def _mock_async_client(response=None, error=None):
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.post = AsyncMock(return_value=response, side_effect=error)
    return client


class TestRefreshAccessToken:
    @pytest.mark.asyncio
    async def test_success(self):
        resp = MagicMock(status_code=200)
        resp.json.return_value = {"access_token": "a", "expires_in": 1800}
        with patch("app.services.token_service.httpx.AsyncClient", return_value=_mock_async_client(resp)):
            result = await _refresh_access_token("r", "id", "secret")
        assert result == ("a", 1800, None)

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        resp = MagicMock(status_code=400, text="invalid_grant")
        with patch("app.services.token_service.httpx.AsyncClient", return_value=_mock_async_client(resp)):
            assert await _refresh_access_token("r", "id", "secret") is None

    @pytest.mark.asyncio
    async def test_network_error(self):
        client = _mock_async_client(error=httpx.ConnectError("down"))
        with patch("app.services.token_service.httpx.AsyncClient", return_value=client):
            assert await _refresh_access_token("r", "id", "secret") is None

    @pytest.mark.asyncio
    async def test_missing_access_token(self):
        resp = MagicMock(status_code=200)
        resp.json.return_value = {"expires_in": 1800}
        with patch("app.services.token_service.httpx.AsyncClient", return_value=_mock_async_client(resp)):
            assert await _refresh_access_token("r", "id", "secret") is None
