from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List

from fastapi import APIRouter, status
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from services.uploads.application.abort_upload_session import (
    AbortUploadSessionUseCase,
)
from services.uploads.application.authorize_part import AuthorizePartUploadUseCase
from services.uploads.application.complete_upload_session import (
    CompleteUploadSessionUseCase,
)
from services.uploads.application.create_upload_session import (
    CreateUploadSessionUseCase,
)
from services.uploads.application.dto import (
    AbortStaleSessionsCommand,
    AbortUploadSessionCommand,
    AuthorizePartCommand,
    CompleteUploadSessionCommand,
    CreateUploadSessionCommand,
)
from services.uploads.application.list_upload_sessions import (
    AbortStaleSessionsUseCase,
    ListUploadSessionsUseCase,
)
from services.uploads.domain.session import UploadSession
from services.uploads.domain.upload import (
    AbortedUpload,
    CompletedUpload,
    CompletionPart,
    MultipartUploadSummary,
    PartAuthorization,
)


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


class CreateUploadSessionRequest(BaseModel):
    filename: str = Field(min_length=1)
    content_type: str = Field(min_length=1)


class UploadSessionResponse(BaseModel):
    session_id: str
    object_key: str
    content_type: str
    state: str
    part_size_bytes: int
    created_at: str

    @classmethod
    def from_domain(
        cls, session: UploadSession, part_size_bytes: int
    ) -> "UploadSessionResponse":
        return cls(
            session_id=session.session_id,
            object_key=session.object_key,
            content_type=session.content_type,
            state=session.state.value,
            part_size_bytes=part_size_bytes,
            created_at=_isoformat(session.created_at),
        )


class ObjectKeyRequest(BaseModel):
    object_key: str = Field(min_length=1)


class PartAuthorizationResponse(BaseModel):
    part_number: int
    url: str
    method: str = "PUT"
    headers: Dict[str, str]
    expires_at: str

    @classmethod
    def from_domain(
        cls, authorization: PartAuthorization
    ) -> "PartAuthorizationResponse":
        return cls(
            part_number=authorization.part_number,
            url=authorization.url,
            headers=dict(authorization.headers),
            expires_at=_isoformat(authorization.expires_at),
        )


class CompletionPartRequest(BaseModel):
    part_number: int
    etag: str


class CompleteUploadSessionRequest(BaseModel):
    object_key: str = Field(min_length=1)
    parts: List[CompletionPartRequest]


class CompletedUploadResponse(BaseModel):
    session_id: str
    object_key: str
    location: str | None
    etag: str | None
    state: str = "completed"

    @classmethod
    def from_domain(cls, completed: CompletedUpload) -> "CompletedUploadResponse":
        return cls(
            session_id=completed.session_id,
            object_key=completed.object_key,
            location=completed.location,
            etag=completed.etag,
        )


class AbortedUploadResponse(BaseModel):
    session_id: str
    object_key: str
    state: str
    released: bool

    @classmethod
    def from_domain(cls, aborted: AbortedUpload) -> "AbortedUploadResponse":
        return cls(
            session_id=aborted.session_id,
            object_key=aborted.object_key,
            state=aborted.state.value,
            released=aborted.released,
        )


class UploadSummaryResponse(BaseModel):
    session_id: str
    object_key: str
    initiated_at: str | None
    state: str | None

    @classmethod
    def from_domain(cls, summary: MultipartUploadSummary) -> "UploadSummaryResponse":
        return cls(
            session_id=summary.session_id,
            object_key=summary.object_key,
            initiated_at=_isoformat(summary.initiated_at),
            state=summary.state.value if summary.state else None,
        )


class UploadSessionListResponse(BaseModel):
    sessions: List[UploadSummaryResponse]


class AbortStaleSessionsRequest(BaseModel):
    older_than_minutes: int = Field(default=24 * 60, ge=1)


class AbortStaleSessionsResponse(BaseModel):
    aborted: List[AbortedUploadResponse]


def create_router(
    create_session_use_case: CreateUploadSessionUseCase,
    authorize_part_use_case: AuthorizePartUploadUseCase,
    complete_session_use_case: CompleteUploadSessionUseCase,
    abort_session_use_case: AbortUploadSessionUseCase,
    list_sessions_use_case: ListUploadSessionsUseCase,
    abort_stale_use_case: AbortStaleSessionsUseCase,
    *,
    part_size_bytes: int,
) -> APIRouter:
    router = APIRouter()
    uploads_router = APIRouter(prefix="/v1/uploads", tags=["uploads"])
    maintenance_router = APIRouter(prefix="/v1/maintenance", tags=["maintenance"])

    @uploads_router.get("", response_model=UploadSessionListResponse)
    async def list_upload_sessions_endpoint():
        summaries = await run_in_threadpool(list_sessions_use_case.execute)
        return UploadSessionListResponse(
            sessions=[UploadSummaryResponse.from_domain(s) for s in summaries]
        )

    @uploads_router.post(
        "", response_model=UploadSessionResponse, status_code=status.HTTP_201_CREATED
    )
    async def create_upload_session_endpoint(payload: CreateUploadSessionRequest):
        command = CreateUploadSessionCommand(
            filename=payload.filename, content_type=payload.content_type
        )
        session = await run_in_threadpool(create_session_use_case.execute, command)
        return UploadSessionResponse.from_domain(session, part_size_bytes)

    @uploads_router.post(
        "/{session_id}/parts/{part_number}/authorization",
        response_model=PartAuthorizationResponse,
    )
    async def authorize_part_endpoint(
        session_id: str, part_number: int, payload: ObjectKeyRequest
    ):
        command = AuthorizePartCommand(
            session_id=session_id,
            object_key=payload.object_key,
            part_number=part_number,
        )
        authorization = await run_in_threadpool(
            authorize_part_use_case.execute, command
        )
        return PartAuthorizationResponse.from_domain(authorization)

    @uploads_router.post(
        "/{session_id}/complete", response_model=CompletedUploadResponse
    )
    async def complete_upload_session_endpoint(
        session_id: str, payload: CompleteUploadSessionRequest
    ):
        command = CompleteUploadSessionCommand(
            session_id=session_id,
            object_key=payload.object_key,
            parts=[
                CompletionPart(part_number=part.part_number, etag=part.etag)
                for part in payload.parts
            ],
        )
        completed = await run_in_threadpool(complete_session_use_case.execute, command)
        return CompletedUploadResponse.from_domain(completed)

    @uploads_router.post("/{session_id}/abort", response_model=AbortedUploadResponse)
    async def abort_upload_session_endpoint(
        session_id: str, payload: ObjectKeyRequest
    ):
        command = AbortUploadSessionCommand(
            session_id=session_id, object_key=payload.object_key
        )
        aborted = await run_in_threadpool(abort_session_use_case.execute, command)
        return AbortedUploadResponse.from_domain(aborted)

    @maintenance_router.post(
        "/abort-stale", response_model=AbortStaleSessionsResponse
    )
    async def abort_stale_sessions_endpoint(payload: AbortStaleSessionsRequest):
        command = AbortStaleSessionsCommand(
            older_than=timedelta(minutes=payload.older_than_minutes)
        )
        aborted = await run_in_threadpool(abort_stale_use_case.execute, command)
        return AbortStaleSessionsResponse(
            aborted=[AbortedUploadResponse.from_domain(item) for item in aborted]
        )

    router.include_router(uploads_router)
    router.include_router(maintenance_router)

    return router
