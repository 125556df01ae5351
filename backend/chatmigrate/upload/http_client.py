"""httpx implementation of DestinationClient."""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from chatmigrate.upload.client import (
    DestinationClient,
    SelectiveImportResponse,
    StartupConfig,
    UploadResponse,
)
from chatmigrate.upload.errors import (
    TransientNetworkError,
    UnsupportedImportTypeError,
    UploadRejectedError,
)
from chatmigrate.utils.json import parse_json_or_none

logger = logging.getLogger(__name__)

UNSUPPORTED_TYPE_MARKER = "Unsupported import type"

# Gateway timeouts: the proxy gave up waiting, the origin may still finish.
_TRANSIENT_STATUS_CODES = frozenset({504, 524})

_TRANSIENT_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    httpx.ProxyError,
)


class HttpDestinationClient(DestinationClient):
    """Talks to the destination chat server's conversation endpoints."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        import_path: str = "/api/convos/import",
        selective_path: str = "/api/convos/import/selective",
        conversations_path: str = "/api/convos",
        config_path: str = "/api/config",
    ) -> None:
        self._client = client
        self._import_path = import_path
        self._selective_path = selective_path
        self._conversations_path = conversations_path
        self._config_path = config_path

    async def upload_file(self, file_name: str, content: bytes) -> UploadResponse:
        files = {"file": (quote(file_name or "File", safe=""), content, "application/json")}
        response = await self._send("POST", self._import_path, files=files)
        body = parse_json_or_none(response.content)
        message = body.get("message") if isinstance(body, dict) else None
        return UploadResponse(status_code=response.status_code, message=message)

    async def import_conversations(self, conversations: list[Any]) -> SelectiveImportResponse:
        response = await self._send(
            "POST", self._selective_path, json={"conversations": conversations}
        )
        body = parse_json_or_none(response.content)
        if not isinstance(body, dict):
            raise UploadRejectedError(response.status_code, "Malformed selective import response")
        return SelectiveImportResponse.model_validate(body)

    async def list_conversation_ids(self) -> set[str]:
        """Walk every page of the conversation listing."""
        ids: set[str] = set()
        cursor: str | None = None
        while True:
            params = {"cursor": cursor} if cursor else None
            response = await self._send("GET", self._conversations_path, params=params)
            body = parse_json_or_none(response.content)
            if not isinstance(body, dict):
                break
            for conv in body.get("conversations") or []:
                conversation_id = conv.get("conversationId") if isinstance(conv, dict) else None
                if conversation_id:
                    ids.add(conversation_id)
            next_cursor = body.get("nextCursor")
            if not next_cursor or next_cursor == cursor:
                break
            cursor = next_cursor
        return ids

    async def fetch_startup_config(self) -> StartupConfig:
        response = await self._send("GET", self._config_path)
        body = parse_json_or_none(response.content)
        return StartupConfig.model_validate(body if isinstance(body, dict) else {})

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Issue a request and translate failures into the upload taxonomy."""
        try:
            response = await self._client.request(method, path, **kwargs)
        except _TRANSIENT_EXCEPTIONS as e:
            logger.warning("%s %s failed with %s", method, path, type(e).__name__)
            raise TransientNetworkError(f"Network error during {method} {path}: {e}") from e
        except httpx.HTTPError as e:
            raise UploadRejectedError(0, str(e)) from e

        if response.is_success:
            return response

        text = response.text
        if UNSUPPORTED_TYPE_MARKER.lower() in text.lower():
            raise UnsupportedImportTypeError(UNSUPPORTED_TYPE_MARKER)
        if response.status_code in _TRANSIENT_STATUS_CODES:
            logger.warning("%s %s timed out at the gateway (%d)", method, path, response.status_code)
            raise TransientNetworkError(f"Gateway timeout ({response.status_code})")
        raise UploadRejectedError(response.status_code, _error_detail(response))


def _error_detail(response: httpx.Response) -> str:
    body = parse_json_or_none(response.content)
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return response.text or response.reason_phrase
