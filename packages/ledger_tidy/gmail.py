"""Gmail-backed receipt search.

Uses the Gmail v1 API through ``googleapiclient``. Authorization is out of
scope: :func:`build_gmail_service` only loads an existing authorized-user
token file (refreshing it when expired).
"""

from __future__ import annotations

import base64
import html
import re
from collections.abc import Mapping
from typing import Any

from .logging_setup import get_logger

GMAIL_SCOPES: tuple[str, ...] = ("https://www.googleapis.com/auth/gmail.readonly",)

_logger = get_logger("ledger_tidy.gmail")


def build_gmail_service(token_file: str) -> Any:
    """Build an authenticated Gmail API service from an authorized-user token file."""

    from google.auth.transport.requests import Request
    from google.oauth2.credentials import Credentials
    from googleapiclient.discovery import build

    creds = Credentials.from_authorized_user_file(token_file, list(GMAIL_SCOPES))
    if not creds.valid:
        if creds.expired and creds.refresh_token:
            creds.refresh(Request())
            with open(token_file, "w", encoding="utf-8") as f:
                f.write(creds.to_json())
        else:
            raise RuntimeError(f"Gmail token in {token_file!r} is invalid; re-authorize first")
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def _decode(data: str) -> str:
    return base64.urlsafe_b64decode(data.encode("ascii")).decode("utf-8", errors="replace")


def _find_part(payload: Mapping[str, Any], mime_type: str) -> str | None:
    """Depth-first search for the first body of ``mime_type``."""

    if payload.get("mimeType") == mime_type:
        data = (payload.get("body") or {}).get("data")
        if data:
            return _decode(data)
    for part in payload.get("parts") or ():
        found = _find_part(part, mime_type)
        if found:
            return found
    return None


def strip_html(markup: str) -> str:
    """Reduce an HTML body to plain text with one line per block element."""

    text = re.sub(r"<(style|script)[^>]*>.*?</\1>", " ", markup, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<br[^>]*>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</(tr|p|div|td|li|h[1-6])>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html.unescape(text)
    lines = (" ".join(line.split()) for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def message_text(message: Mapping[str, Any]) -> str:
    """Return the plain-text body of a Gmail ``format=full`` message."""

    payload = message.get("payload") or {}
    plain = _find_part(payload, "text/plain")
    if plain and plain.strip():
        return plain
    markup = _find_part(payload, "text/html")
    if markup:
        return strip_html(markup)
    return str(message.get("snippet") or "")


class GmailReceiptSearch:
    """``search(query) -> first matching message body | None`` over Gmail."""

    def __init__(self, service: Any, *, user_id: str = "me") -> None:
        self._service = service
        self._user_id = user_id

    def search(self, query: str) -> str | None:
        messages = self._service.users().messages()
        listing = messages.list(userId=self._user_id, q=query, maxResults=1).execute()
        hits = listing.get("messages") or []
        if not hits:
            return None
        msg = messages.get(userId=self._user_id, id=hits[0]["id"], format="full").execute()
        text = message_text(msg)
        _logger.debug("gmail:hit id=%s chars=%d", hits[0]["id"], len(text))
        return text or None
