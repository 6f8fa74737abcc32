from __future__ import annotations

import logging

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from services.uploads.application.interfaces import MultipartStorageBackend
from services.uploads.domain.errors import (
    BackendUnavailable,
    IncompleteParts,
    SessionNotFound,
)
from services.uploads.domain.upload import (
    BackendPart,
    CompletedUpload,
    MultipartUploadSummary,
)

LOGGER = logging.getLogger(__name__)

_INCOMPLETE_PART_CODES = {"InvalidPart", "InvalidPartOrder", "EntityTooSmall"}


def create_s3_client(
    *,
    endpoint_url: str | None,
    region_name: str,
    access_key: str,
    secret_key: str,
    max_attempts: int = 3,
):
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        region_name=region_name,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        config=BotoConfig(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            retries={"max_attempts": max_attempts, "mode": "standard"},
        ),
    )


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class S3MultipartBackend(MultipartStorageBackend):
    def __init__(self, *, client, bucket_name: str, object_acl: str | None = None):
        self._client = client
        self._bucket_name = bucket_name
        self._object_acl = object_acl

    def initiate_upload(self, object_key: str, content_type: str) -> str:
        params = {
            "Bucket": self._bucket_name,
            "Key": object_key,
            "ContentType": content_type,
        }
        if self._object_acl:
            params["ACL"] = self._object_acl
        try:
            response = self._client.create_multipart_upload(**params)
        except (BotoCoreError, ClientError) as exc:
            LOGGER.error("Failed to create multipart upload for %s: %s", object_key, exc)
            raise BackendUnavailable("Storage backend could not create a session") from exc
        return response["UploadId"]

    def generate_part_url(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        expires_in_seconds: int,
    ) -> str:
        try:
            return self._client.generate_presigned_url(
                ClientMethod="upload_part",
                Params={
                    "Bucket": self._bucket_name,
                    "Key": object_key,
                    "UploadId": upload_id,
                    "PartNumber": part_number,
                },
                ExpiresIn=expires_in_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            LOGGER.error("Failed to presign part %s of %s: %s", part_number, upload_id, exc)
            raise BackendUnavailable("Storage backend could not sign the part") from exc

    def list_parts(self, *, object_key: str, upload_id: str) -> list[BackendPart]:
        paginator = self._client.get_paginator("list_parts")
        parts = []
        try:
            for page in paginator.paginate(
                Bucket=self._bucket_name, Key=object_key, UploadId=upload_id
            ):
                for part in page.get("Parts", []):
                    parts.append(
                        BackendPart(
                            part_number=part["PartNumber"],
                            etag=part["ETag"],
                            size=part.get("Size", 0),
                        )
                    )
        except ClientError as exc:
            if _error_code(exc) == "NoSuchUpload":
                raise SessionNotFound(
                    f"Upload {upload_id} no longer exists at the storage backend"
                ) from exc
            raise BackendUnavailable("Storage backend could not list parts") from exc
        except BotoCoreError as exc:
            raise BackendUnavailable("Storage backend could not list parts") from exc
        return parts

    def complete_upload(
        self, *, object_key: str, upload_id: str, parts: list[tuple[int, str]]
    ) -> CompletedUpload:
        try:
            response = self._client.complete_multipart_upload(
                Bucket=self._bucket_name,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"ETag": etag, "PartNumber": part_number}
                        for part_number, etag in parts
                    ]
                },
            )
        except ClientError as exc:
            code = _error_code(exc)
            if code in _INCOMPLETE_PART_CODES:
                raise IncompleteParts(
                    f"Storage backend rejected the part list ({code})"
                ) from exc
            if code == "NoSuchUpload":
                raise SessionNotFound(
                    f"Upload {upload_id} no longer exists at the storage backend"
                ) from exc
            LOGGER.error("Failed to complete upload %s: %s", upload_id, exc)
            raise BackendUnavailable("Storage backend could not complete the upload") from exc
        except BotoCoreError as exc:
            LOGGER.error("Failed to complete upload %s: %s", upload_id, exc)
            raise BackendUnavailable("Storage backend could not complete the upload") from exc
        return CompletedUpload(
            session_id=upload_id,
            object_key=object_key,
            location=response.get("Location"),
            etag=response.get("ETag"),
        )

    def abort_upload(self, *, object_key: str, upload_id: str) -> bool:
        try:
            self._client.abort_multipart_upload(
                Bucket=self._bucket_name, Key=object_key, UploadId=upload_id
            )
        except ClientError as exc:
            if _error_code(exc) == "NoSuchUpload":
                return False
            LOGGER.error("Failed to abort upload %s: %s", upload_id, exc)
            raise BackendUnavailable("Storage backend could not abort the upload") from exc
        except BotoCoreError as exc:
            LOGGER.error("Failed to abort upload %s: %s", upload_id, exc)
            raise BackendUnavailable("Storage backend could not abort the upload") from exc
        return True

    def list_uploads(self) -> list[MultipartUploadSummary]:
        paginator = self._client.get_paginator("list_multipart_uploads")
        uploads = []
        try:
            for page in paginator.paginate(Bucket=self._bucket_name):
                for upload in page.get("Uploads", []):
                    uploads.append(
                        MultipartUploadSummary(
                            session_id=upload["UploadId"],
                            object_key=upload["Key"],
                            initiated_at=upload.get("Initiated"),
                        )
                    )
        except (BotoCoreError, ClientError) as exc:
            LOGGER.error("Failed to list multipart uploads: %s", exc)
            raise BackendUnavailable("Storage backend could not list uploads") from exc
        return uploads
