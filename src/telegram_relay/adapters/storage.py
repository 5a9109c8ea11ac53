"""S3-compatible object storage (Yandex Object Storage by default).

boto3 is synchronous; every call runs in a worker thread so a slow upload
only delays the handler that started it.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import NotFoundError, TransportError


logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class S3Storage:
    """Put / get objects in one bucket and build their public URLs."""

    def __init__(
        self,
        bucket_name: str,
        *,
        storage_host: str,
        client=None,
        endpoint_url: Optional[str] = None,
        region_name: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
    ):
        self.bucket_name = bucket_name
        self.storage_host = storage_host
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                region_name=region_name,
                aws_access_key_id=aws_access_key_id,
                aws_secret_access_key=aws_secret_access_key,
            )
        self._client = client

    def public_url(self, key: str) -> str:
        return f"https://{self.storage_host}/{self.bucket_name}/{key}"

    async def put_object(
        self, key: str, data: bytes, content_type: Optional[str] = None
    ) -> None:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                **extra,
            )
        except (BotoCoreError, ClientError) as e:
            raise TransportError(f"Failed to upload the object {key}: {e}") from e

    async def upload_file(
        self, path: Path, key: str, content_type: Optional[str] = None
    ) -> None:
        extra = {"ExtraArgs": {"ContentType": content_type}} if content_type else {}
        try:
            await asyncio.to_thread(
                self._client.upload_file, str(path), self.bucket_name, key, **extra
            )
        except (BotoCoreError, ClientError) as e:
            raise TransportError(
                f"Failed to upload file {path} to the path {key}: {e}"
            ) from e
        except OSError as e:
            raise TransportError(f"Failed to read file {path} for upload: {e}") from e

    async def get_object(self, key: str) -> bytes:
        """
        Download an object.

        Raises:
            NotFoundError if the key does not exist, TransportError otherwise.
        """
        try:
            return await asyncio.to_thread(self._read_object, key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                raise NotFoundError(f"No object with the path {key}") from e
            raise TransportError(f"Can't get the object {key}: {e}") from e
        except BotoCoreError as e:
            raise TransportError(f"Can't get the object {key}: {e}") from e

    def _read_object(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket_name, Key=key)
        body = response.get("Body")
        if body is None:
            return b""
        try:
            return body.read()
        finally:
            body.close()
