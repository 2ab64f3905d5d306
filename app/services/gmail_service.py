"""Gmail message source — history cursor, recent scan, push watch.

Wraps the Gmail REST API for one account's access token. Constructed per
run (never a module-level client) so the credential scope stays explicit.

Business Rules:
- Only primary-inbox, non-promotional messages are returned. The list and
  history queries ask for that, and every fetched message is re-checked
  from its labels because upstream filters are best-effort
- resolve_since() on a stale cursor (Gmail 404) returns ([], None)
  instead of raising; the caller falls back to the notification's cursor
- list_recent() over-fetches 2x to make up for post-filtering
- Bodies prefer text/plain, fall back to tag-stripped HTML, capped at 5000 chars

Called by: services/ingestion.py, services/watch_service.py
Depends on: utils/google_client.py, config.py
"""

import base64
import html
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.config import settings
from app.utils import safe_int
from app.utils.google_client import GMAIL_BASE, GoogleApiError, GoogleClient

log = logging.getLogger("subscout.gmail")

PROMOTIONS_LABEL = "CATEGORY_PROMOTIONS"
INBOX_LABEL = "INBOX"
PRIMARY_QUERY = "category:primary"
MAX_BODY_CHARS = 5000
RECENT_OVERFETCH = 2

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")


class GmailApiError(Exception):
    """Transient or unexpected Gmail failure while resolving messages."""


@dataclass
class MailMessage:
    """A Gmail message in `format=full` shape, reduced to what we use."""

    id: str
    thread_id: str = ""
    label_ids: list[str] = field(default_factory=list)
    snippet: str = ""
    payload: dict = field(default_factory=dict)
    internal_date: str = "0"

    @classmethod
    def from_api(cls, data: dict) -> "MailMessage":
        return cls(
            id=data["id"],
            thread_id=data.get("threadId", ""),
            label_ids=list(data.get("labelIds") or []),
            snippet=html.unescape(data.get("snippet") or ""),
            payload=data.get("payload") or {},
            internal_date=str(data.get("internalDate") or "0"),
        )


@dataclass
class EmailContent:
    subject: str
    sender: str
    body: str
    date: datetime


def is_promotional(message: MailMessage) -> bool:
    return PROMOTIONS_LABEL in message.label_ids


def is_primary_inbox(message: MailMessage) -> bool:
    return INBOX_LABEL in message.label_ids and not is_promotional(message)


def extract_content(message: MailMessage) -> EmailContent:
    """Pull subject/from/body/date out of a full-format message."""
    headers = message.payload.get("headers") or []

    def header(name: str) -> str:
        for h in headers:
            if (h.get("name") or "").lower() == name:
                return h.get("value") or ""
        return ""

    subject = header("subject") or "(No Subject)"
    sender = header("from")
    millis = safe_int(message.internal_date) or 0
    date = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)

    body = _extract_body(message.payload)
    return EmailContent(subject=subject, sender=sender, body=body[:MAX_BODY_CHARS], date=date)


def _decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")


def _strip_html(text: str) -> str:
    return _WS_RE.sub(" ", html.unescape(_TAG_RE.sub(" ", text))).strip()


def _extract_body(payload: dict) -> str:
    data = (payload.get("body") or {}).get("data")
    if data:
        text = _decode(data)
        return _strip_html(text) if payload.get("mimeType") == "text/html" else text

    plain, html_text = _walk_parts(payload.get("parts") or [])
    if plain:
        return plain
    return _strip_html(html_text) if html_text else ""


def _walk_parts(parts: list[dict]) -> tuple[str, str]:
    """Depth-first search for the first text/plain and text/html parts."""
    plain, html_text = "", ""
    for part in parts:
        mime = part.get("mimeType", "")
        data = (part.get("body") or {}).get("data")
        if mime == "text/plain" and data and not plain:
            plain = _decode(data)
        elif mime == "text/html" and data and not html_text:
            html_text = _decode(data)
        elif part.get("parts"):
            sub_plain, sub_html = _walk_parts(part["parts"])
            plain = plain or sub_plain
            html_text = html_text or sub_html
        if plain:
            break
    return plain, html_text


class GmailService:
    """Per-account Gmail adapter."""

    def __init__(self, access_token: str):
        self.gc = GoogleClient(access_token)

    async def fetch(self, message_id: str) -> MailMessage | None:
        """Fetch one message. None when it is gone or the call fails."""
        try:
            data = await self.gc.get_json(
                f"{GMAIL_BASE}/users/me/messages/{message_id}",
                params={"format": "full"},
            )
        except GoogleApiError as e:
            log.warning(f"Failed to fetch message {message_id}: {e.status_code}")
            return None
        if not data.get("id"):
            return None
        return MailMessage.from_api(data)

    async def _fetch_primary(self, message_ids: list[str]) -> list[MailMessage]:
        messages = []
        for message_id in message_ids:
            message = await self.fetch(message_id)
            if not message:
                continue
            if not is_primary_inbox(message):
                log.debug(f"Message {message_id} dropped: not primary inbox ({message.label_ids})")
                continue
            messages.append(message)
        return messages

    async def list_recent(self, limit: int = 20) -> list[MailMessage]:
        """Most recent primary-inbox messages, newest first, at most `limit`."""
        try:
            listing = await self.gc.get_json(
                f"{GMAIL_BASE}/users/me/messages",
                params={
                    "maxResults": str(limit * RECENT_OVERFETCH),
                    "labelIds": INBOX_LABEL,
                    "q": PRIMARY_QUERY,
                },
            )
        except GoogleApiError as e:
            raise GmailApiError(f"messages.list failed: {e}") from e

        ids = [m["id"] for m in listing.get("messages", []) if m.get("id")]
        messages = await self._fetch_primary(ids)
        return messages[:limit]

    async def resolve_since(
        self, cursor: str, max_messages: int | None = None
    ) -> tuple[list[MailMessage], str | None]:
        """Messages added since `cursor`, plus the newest history id.

        A cursor Gmail no longer knows about (404) yields ([], None).
        """
        max_messages = max_messages or settings.history_max_messages
        ids: list[str] = []
        latest: str | None = None
        page_token: str | None = None

        while True:
            params = {
                "startHistoryId": str(cursor),
                "historyTypes": "messageAdded",
                "labelId": INBOX_LABEL,
            }
            if page_token:
                params["pageToken"] = page_token
            try:
                data = await self.gc.get_json(f"{GMAIL_BASE}/users/me/history", params=params)
            except GoogleApiError as e:
                if e.status_code == 404:
                    log.warning(f"History cursor {cursor} is no longer valid")
                    return [], None
                raise GmailApiError(f"history.list failed: {e}") from e

            latest = data.get("historyId") or latest
            for record in data.get("history", []):
                for added in record.get("messagesAdded", []):
                    message_id = (added.get("message") or {}).get("id")
                    if message_id and message_id not in ids:
                        ids.append(message_id)

            page_token = data.get("nextPageToken")
            if not page_token or len(ids) >= max_messages:
                break

        if len(ids) > max_messages:
            log.info(f"History since {cursor}: {len(ids)} messages, processing {max_messages}")
        messages = await self._fetch_primary(ids[:max_messages])
        return messages, str(latest) if latest else None

    async def register_watch(self) -> tuple[str, datetime]:
        """Start (or refresh) push notifications. Returns (history_id, expiry)."""
        data = await self.gc.post_json(
            f"{GMAIL_BASE}/users/me/watch",
            {"topicName": settings.pubsub_topic, "labelIds": [INBOX_LABEL]},
        )
        history_id = str(data["historyId"])
        expiry = datetime.fromtimestamp(int(data["expiration"]) / 1000, tz=timezone.utc)
        return history_id, expiry

    async def deregister_watch(self) -> None:
        await self.gc.post_json(f"{GMAIL_BASE}/users/me/stop", {})
