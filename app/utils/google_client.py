"""Google API client — retry wrapper shared by Gmail and Calendar.

Usage:
    from app.utils.google_client import GoogleClient
    gc = GoogleClient(access_token)
    msg = await gc.get_json(f"{GMAIL_BASE}/users/me/messages/{msg_id}", params={"format": "full"})
    await gc.post_json(f"{GMAIL_BASE}/users/me/stop", {})

Retries 429 (respecting Retry-After), 5xx and transport failures (timeouts,
refused or reset connections) with exponential backoff.
Client errors (4xx) raise GoogleApiError immediately with the status code
so callers can special-case 404 (stale history cursor, deleted message).
"""
import asyncio
import logging

import httpx

log = logging.getLogger("subscout.google")

GMAIL_BASE = "https://gmail.googleapis.com/gmail/v1"
CALENDAR_BASE = "https://www.googleapis.com/calendar/v3"

MAX_RETRIES = 3
BACKOFF_BASE = 2  # seconds, exponential: 2, 4, 8


class GoogleApiError(Exception):
    """Non-retryable (or retry-exhausted) Google API failure."""

    def __init__(self, status_code: int | None, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Google API error {status_code}: {detail}")


class GoogleClient:
    """Thin wrapper around Google REST APIs with retry + bearer auth."""

    def __init__(self, access_token: str):
        self.token = access_token
        self._base_headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def get_json(self, url: str, params: dict | None = None,
                       timeout: int = 30) -> dict:
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await self._request_with_retry(client, "GET", url, params=params)

    async def post_json(self, url: str, json_data: dict | None = None,
                        timeout: int = 30) -> dict:
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await self._request_with_retry(client, "POST", url, json_data=json_data or {})

    async def put_json(self, url: str, json_data: dict, timeout: int = 30) -> dict:
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await self._request_with_retry(client, "PUT", url, json_data=json_data)

    async def delete(self, url: str, timeout: int = 30) -> dict:
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await self._request_with_retry(client, "DELETE", url)

    # ── Internal retry logic ────────────────────────────────────────

    async def _request_with_retry(
        self, client: httpx.AsyncClient,
        method: str, url: str,
        params: dict | None = None,
        json_data: dict | None = None,
    ) -> dict:
        """Execute HTTP request with exponential backoff on 429 / 5xx."""
        last_error: Exception | None = None

        for attempt in range(MAX_RETRIES + 1):
            try:
                resp = await client.request(
                    method, url, params=params, json=json_data,
                    headers=self._base_headers,
                )

                if resp.status_code in (200, 201):
                    if not resp.content:
                        return {}
                    try:
                        return resp.json()
                    except ValueError as e:
                        raise GoogleApiError(resp.status_code, f"Malformed JSON body: {e}") from e
                if resp.status_code in (202, 204):
                    return {}

                # Throttled, respect Retry-After
                if resp.status_code == 429:
                    wait = int(resp.headers.get("Retry-After", BACKOFF_BASE ** (attempt + 1)))
                    log.warning(f"Google 429 — retry in {wait}s (attempt {attempt + 1})")
                    await asyncio.sleep(wait)
                    last_error = GoogleApiError(429, "rate limited")
                    continue

                if resp.status_code >= 500:
                    wait = BACKOFF_BASE ** (attempt + 1)
                    log.warning(f"Google {resp.status_code} — retry in {wait}s (attempt {attempt + 1})")
                    await asyncio.sleep(wait)
                    last_error = GoogleApiError(resp.status_code, resp.text[:300])
                    continue

                # Client error (400, 401, 403, 404), no retry
                log.debug(f"Google {resp.status_code}: {resp.text[:300]}")
                raise GoogleApiError(resp.status_code, resp.text[:300])

            except httpx.TransportError as e:
                last_error = e
                wait = BACKOFF_BASE ** (attempt + 1)
                log.warning(f"Google connection error — retry in {wait}s: {e}")
                await asyncio.sleep(wait)

        log.error(f"Google request failed after {MAX_RETRIES} retries: {method} {url}")
        if isinstance(last_error, GoogleApiError):
            raise last_error
        raise GoogleApiError(None, str(last_error) if last_error else "All retries exhausted")
