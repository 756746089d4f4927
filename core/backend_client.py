"""Async HTTP client for the course, calendar, and mail backend.

Resources are addressed by a ``kind`` plus scope ids (``course_id``,
``coursework_id``) that fill the path templates below. Every call carries the
caller's bearer token. Transport failures and non-2xx replies surface as
``BackendError`` with the HTTP status and the backend's status code, so the
orchestrator can tell transient, precondition, and permission failures apart.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from core.errors import BackendError

logger = logging.getLogger(__name__)

RESOURCE_PATHS: Dict[str, str] = {
    "courses": "courses",
    "students": "courses/{course_id}/students",
    "teachers": "courses/{course_id}/teachers",
    "invitations": "invitations",
    "announcements": "courses/{course_id}/announcements",
    "coursework": "courses/{course_id}/courseWork",
    "submissions": "courses/{course_id}/courseWork/{coursework_id}/studentSubmissions",
    "events": "calendar/events",
    "messages": "mail/messages",
}

_MAX_PAGES = 20


class BackendClient:
    """Typed CRUD over the backend's REST resources."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") + "/"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
            follow_redirects=True,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- Public CRUD -----------------------------------------------------------
    async def list(
        self,
        kind: str,
        token: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        **scope: str,
    ) -> List[Dict[str, Any]]:
        """Fetch every item of ``kind``, following ``nextPageToken`` pages."""
        path = self._path(kind, **scope)
        query: Dict[str, Any] = dict(params or {})
        items: List[Dict[str, Any]] = []
        for _ in range(_MAX_PAGES):
            payload = await self._request("GET", path, token, params=query)
            items.extend(_extract_items(payload))
            next_token = payload.get("nextPageToken") if isinstance(payload, dict) else None
            if not next_token:
                break
            query["pageToken"] = next_token
        return items

    async def get(self, kind: str, entity_id: str, token: str, **scope: str) -> Dict[str, Any]:
        return _as_dict(await self._request("GET", f"{self._path(kind, **scope)}/{entity_id}", token))

    async def create(self, kind: str, body: Mapping[str, Any], token: str, **scope: str) -> Dict[str, Any]:
        return _as_dict(await self._request("POST", self._path(kind, **scope), token, json=dict(body)))

    async def update(self, kind: str, entity_id: str, body: Mapping[str, Any], token: str, **scope: str) -> Dict[str, Any]:
        return _as_dict(await self._request("PUT", f"{self._path(kind, **scope)}/{entity_id}", token, json=dict(body)))

    async def patch(
        self,
        kind: str,
        entity_id: str,
        body: Mapping[str, Any],
        token: str,
        *,
        update_mask: Optional[str] = None,
        **scope: str,
    ) -> Dict[str, Any]:
        params = {"updateMask": update_mask} if update_mask else None
        return _as_dict(
            await self._request("PATCH", f"{self._path(kind, **scope)}/{entity_id}", token, params=params, json=dict(body))
        )

    async def delete(self, kind: str, entity_id: str, token: str, **scope: str) -> None:
        await self._request("DELETE", f"{self._path(kind, **scope)}/{entity_id}", token)

    # --- Internals ---------------------------------------------------------------
    @staticmethod
    def _path(kind: str, **scope: str) -> str:
        try:
            template = RESOURCE_PATHS[kind]
        except KeyError as exc:
            raise ValueError(f"Unknown backend resource '{kind}'") from exc
        try:
            return template.format(**scope)
        except KeyError as exc:
            raise ValueError(f"Resource '{kind}' needs scope id {exc.args[0]!r}") from exc

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = token if token.lower().startswith("bearer ") else f"Bearer {token}"
        try:
            response = await self._client.request(method, path, headers=headers, params=params, json=json)
        except httpx.TimeoutException as exc:
            logger.warning("Backend %s %s timed out", method, path)
            raise BackendError("The request timed out.", status="DEADLINE_EXCEEDED") from exc
        except httpx.HTTPError as exc:
            logger.warning("Backend %s %s failed: %s", method, path, exc)
            raise BackendError("The service could not be reached.", status="UNAVAILABLE") from exc

        if response.status_code >= 400:
            message, status = _error_details(response)
            logger.warning("Backend %s %s returned %s: %s", method, path, response.status_code, message)
            raise BackendError(message, http_status=response.status_code, status=status)

        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError("The service returned an unreadable response.", http_status=response.status_code) from exc


def _error_details(response: httpx.Response) -> tuple[str, Optional[str]]:
    """Pull ``message``/``status`` out of the common error envelopes."""
    try:
        payload = response.json()
    except ValueError:
        return (response.text or response.reason_phrase or "Request failed").strip(), None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or response.reason_phrase), error.get("status")
        if isinstance(error, str):
            return str(payload.get("message") or error), payload.get("status")
        if payload.get("message"):
            return str(payload["message"]), payload.get("status")
    return response.reason_phrase or "Request failed", None


def _extract_items(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        for value in payload.values():
            if isinstance(value, list):
                return [item for item in value if isinstance(item, dict)]
    return []


def _as_dict(payload: Any) -> Dict[str, Any]:
    return payload if isinstance(payload, dict) else {}


__all__ = ["BackendClient", "RESOURCE_PATHS"]
