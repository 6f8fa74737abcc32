"""Async client for the upload coordinator's HTTP API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from .errors import CoordinatorUnavailable, error_from_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadSessionHandle:
    session_id: str
    object_key: str
    content_type: str
    part_size_bytes: Optional[int] = None


@dataclass(frozen=True)
class PartAuthorization:
    part_number: int
    url: str
    method: str = "PUT"
    headers: Dict[str, str] = field(default_factory=dict)
    expires_at: Optional[str] = None


@dataclass(frozen=True)
class CompletedObject:
    session_id: str
    object_key: str
    location: Optional[str]
    etag: Optional[str]


@dataclass(frozen=True)
class AbortResult:
    session_id: str
    object_key: str
    state: str
    released: bool


class CoordinatorClient:
    def __init__(self, http: httpx.AsyncClient, base_url: str = "") -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def list_sessions(self) -> List[Dict[str, Any]]:
        payload = await self._request("GET", "/v1/uploads")
        return list(payload.get("sessions", []))

    async def create_session(
        self, filename: str, content_type: str
    ) -> UploadSessionHandle:
        payload = await self._request(
            "POST",
            "/v1/uploads",
            json={"filename": filename, "content_type": content_type},
        )
        return UploadSessionHandle(
            session_id=payload["session_id"],
            object_key=payload["object_key"],
            content_type=payload.get("content_type", content_type),
            part_size_bytes=payload.get("part_size_bytes"),
        )

    async def authorize_part(
        self, session: UploadSessionHandle, part_number: int
    ) -> PartAuthorization:
        payload = await self._request(
            "POST",
            f"/v1/uploads/{session.session_id}/parts/{part_number}/authorization",
            json={"object_key": session.object_key},
        )
        return PartAuthorization(
            part_number=payload["part_number"],
            url=payload["url"],
            method=payload.get("method", "PUT"),
            headers=dict(payload.get("headers") or {}),
            expires_at=payload.get("expires_at"),
        )

    async def complete_session(
        self, session: UploadSessionHandle, parts: Sequence[Tuple[int, str]]
    ) -> CompletedObject:
        payload = await self._request(
            "POST",
            f"/v1/uploads/{session.session_id}/complete",
            json={
                "object_key": session.object_key,
                "parts": [
                    {"part_number": part_number, "etag": etag}
                    for part_number, etag in parts
                ],
            },
        )
        return CompletedObject(
            session_id=payload["session_id"],
            object_key=payload["object_key"],
            location=payload.get("location"),
            etag=payload.get("etag"),
        )

    async def abort_session(self, session: UploadSessionHandle) -> AbortResult:
        payload = await self._request(
            "POST",
            f"/v1/uploads/{session.session_id}/abort",
            json={"object_key": session.object_key},
        )
        return AbortResult(
            session_id=payload["session_id"],
            object_key=payload["object_key"],
            state=payload["state"],
            released=payload["released"],
        )

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise CoordinatorUnavailable(f"{method} {path} failed: {exc}") from exc

        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = None
        error = error_from_response(response.status_code, body)
        logger.debug(f"{method} {path} -> {response.status_code} {error.code}")
        raise error
