from __future__ import annotations

import json
import logging
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

from services.uploads.application.interfaces import SessionEventPublisher
from services.uploads.domain.session import UploadSession
from services.uploads.domain.upload import CompletedUpload

LOGGER = logging.getLogger(__name__)


def _event_payload(event: str, session: UploadSession, bucket: str | None) -> dict[str, Any]:
    return {
        "event": event,
        "session_id": session.session_id,
        "bucket": bucket,
        "object_key": session.object_key,
        "content_type": session.content_type,
        "state": session.state.value,
        "location": session.location,
    }


class LoggingSessionEventPublisher(SessionEventPublisher):
    def __init__(self, bucket_name: str | None = None) -> None:
        self._bucket = bucket_name

    def publish_completed(
        self, session: UploadSession, completed: CompletedUpload
    ) -> None:
        LOGGER.info(_event_payload("upload.completed", session, self._bucket))

    def publish_aborted(self, session: UploadSession) -> None:
        LOGGER.info(_event_payload("upload.aborted", session, self._bucket))


class RedisSessionEventPublisher(SessionEventPublisher):
    def __init__(
        self,
        *,
        host: str,
        port: int,
        db: int,
        channel: str,
        bucket_name: str,
        redis: Redis | None = None,
    ) -> None:
        self._redis = redis or Redis(host=host, port=port, db=db, decode_responses=False)
        self._channel = channel
        self._bucket = bucket_name

    def publish_completed(
        self, session: UploadSession, completed: CompletedUpload
    ) -> None:
        payload = _event_payload("upload.completed", session, self._bucket)
        payload["etag"] = completed.etag
        self._publish(payload)

    def publish_aborted(self, session: UploadSession) -> None:
        self._publish(_event_payload("upload.aborted", session, self._bucket))

    def _publish(self, payload: dict[str, Any]) -> None:
        try:
            self._redis.publish(self._channel, json.dumps(payload))
        except RedisError as exc:
            LOGGER.error(
                "Failed to publish %s for session %s: %s",
                payload["event"],
                payload["session_id"],
                exc,
            )
