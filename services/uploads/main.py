from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.uploads.api.errors import install_error_handlers
from services.uploads.api.routes import create_router
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
from services.uploads.application.interfaces import (
    MultipartStorageBackend,
    SessionEventPublisher,
    SessionRepository,
)
from services.uploads.application.list_upload_sessions import (
    AbortStaleSessionsUseCase,
    ListUploadSessionsUseCase,
)
from services.uploads.config import UploadsConfig, load_config
from services.uploads.infrastructure.db import create_session_factory
from services.uploads.infrastructure.events import (
    LoggingSessionEventPublisher,
    RedisSessionEventPublisher,
)
from services.uploads.infrastructure.ids import UuidIdProvider
from services.uploads.infrastructure.s3_multipart import (
    S3MultipartBackend,
    create_s3_client,
)
from services.uploads.infrastructure.sessions import (
    InMemorySessionRepository,
    SqlSessionRepository,
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level, format="%(asctime)s - %(levelname)s - %(message)s"
    )


def build_backend(cfg: UploadsConfig) -> MultipartStorageBackend:
    # Presigned URLs are handed to clients, so sign against the public endpoint.
    client = create_s3_client(
        endpoint_url=cfg.storage_public_endpoint_url or cfg.storage_endpoint_url,
        region_name=cfg.storage_region,
        access_key=cfg.storage_access_key,
        secret_key=cfg.storage_secret_key,
        max_attempts=cfg.storage_max_attempts,
    )
    return S3MultipartBackend(
        client=client,
        bucket_name=cfg.storage_bucket,
        object_acl=cfg.storage_object_acl,
    )


def build_repository(cfg: UploadsConfig) -> SessionRepository:
    if cfg.session_store_dsn:
        return SqlSessionRepository(create_session_factory(cfg.session_store_dsn))
    return InMemorySessionRepository()


def build_event_publisher(cfg: UploadsConfig) -> SessionEventPublisher:
    if cfg.events_backend == "redis":
        return RedisSessionEventPublisher(
            host=cfg.redis_host,
            port=cfg.redis_port,
            db=cfg.redis_db,
            channel=cfg.redis_channel,
            bucket_name=cfg.storage_bucket,
        )
    return LoggingSessionEventPublisher(bucket_name=cfg.storage_bucket)


def build_app(
    config: UploadsConfig | None = None,
    *,
    backend: MultipartStorageBackend | None = None,
    repository: SessionRepository | None = None,
    event_publisher: SessionEventPublisher | None = None,
) -> FastAPI:
    cfg = config or load_config()
    configure_logging(cfg.log_level)
    app = FastAPI(title="partwise uploads")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.allowed_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    @app.get("/ping")
    async def ping():
        return {"message": "pong"}

    backend = backend or build_backend(cfg)
    repository = repository or build_repository(cfg)
    event_publisher = event_publisher or build_event_publisher(cfg)

    create_session_use_case = CreateUploadSessionUseCase(
        id_provider=UuidIdProvider(),
        backend=backend,
        repository=repository,
        object_key_prefix=cfg.storage_object_prefix,
    )
    authorize_part_use_case = AuthorizePartUploadUseCase(
        backend=backend,
        repository=repository,
        authorization_ttl=timedelta(seconds=cfg.authorization_ttl_seconds),
    )
    complete_session_use_case = CompleteUploadSessionUseCase(
        backend=backend,
        repository=repository,
        event_publisher=event_publisher,
    )
    abort_session_use_case = AbortUploadSessionUseCase(
        backend=backend,
        repository=repository,
        event_publisher=event_publisher,
    )
    list_sessions_use_case = ListUploadSessionsUseCase(
        backend=backend, repository=repository
    )
    abort_stale_use_case = AbortStaleSessionsUseCase(
        list_sessions=list_sessions_use_case,
        abort_session=abort_session_use_case,
    )

    app.include_router(
        create_router(
            create_session_use_case,
            authorize_part_use_case,
            complete_session_use_case,
            abort_session_use_case,
            list_sessions_use_case,
            abort_stale_use_case,
            part_size_bytes=cfg.part_size_bytes,
        )
    )

    return app
