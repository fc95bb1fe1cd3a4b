"""
S3-compatible blob backend.

Works against AWS S3, MinIO, Cloudflare R2 and other S3-compatible services.
Session payloads are small (capped at write time), so every object is a
single put_object; multipart uploads are never needed.

botocore's own retries are disabled: transient failures surface to the caller
as StorageIOError and any retry policy belongs to the transport.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import aioboto3
import aiohttp
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..bounded_reader import read_bounded
from ..exceptions import (
    AuthenticationError,
    StorageConnectionError,
    StorageIOError,
    StoreNotInitializedError,
)
from ..namespacing import namespace_key
from .base import BlobBackend

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
AUTH_FAILURE_CODES = frozenset({"403", "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch"})

CONTENT_TYPE = "application/octet-stream"


@dataclass
class S3BlobConfig:
    """Configuration for the S3 blob backend.

    Attributes:
        bucket: Bucket holding session blobs
        region: Bucket region
        endpoint_url: Custom endpoint for S3-compatible services
        access_key_id: Access key (None uses the default AWS credential chain)
        secret_access_key: Secret key
        connect_timeout_seconds: TCP connect timeout
        read_timeout_seconds: Socket read timeout
    """

    bucket: str
    region: str | None = None
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> S3BlobConfig:
        """Create config from environment variables.

        Expected environment variables:
        - S3_BUCKET: Bucket name (required)
        - S3_REGION: Bucket region
        - S3_ENDPOINT: Endpoint URL for S3-compatible services
        - S3_ACCESS_KEY / S3_SECRET_KEY: Static credentials (must be set together)
        """
        bucket = os.environ.get("S3_BUCKET")
        access_key = os.environ.get("S3_ACCESS_KEY")
        secret_key = os.environ.get("S3_SECRET_KEY")

        if not bucket:
            raise AuthenticationError("s3", "S3_BUCKET environment variable not set")
        if bool(access_key) != bool(secret_key):
            raise AuthenticationError("s3", "S3_ACCESS_KEY and S3_SECRET_KEY must be set together")

        return cls(
            bucket=bucket,
            region=os.environ.get("S3_REGION"),
            endpoint_url=os.environ.get("S3_ENDPOINT"),
            access_key_id=access_key,
            secret_access_key=secret_key,
        )


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3BlobBackend(BlobBackend):
    """Blob backend on an S3-compatible object store.

    Example:
        >>> backend = S3BlobBackend(S3BlobConfig(bucket="bot-sessions"))
        >>> async with backend:
        ...     await backend.put("bot42/settings", b"{}")
    """

    def __init__(self, config: S3BlobConfig):
        self.config = config
        self._session: Any = None
        self._client_context: Any = None
        self._client: Any = None

    @property
    def _endpoint(self) -> str:
        return self.config.endpoint_url or f"s3://{self.config.bucket}"

    async def initialize(self) -> None:
        """Create the S3 client and check that the bucket is reachable."""
        if self._client is not None:
            return

        session_kwargs: dict[str, Any] = {}
        if self.config.access_key_id and self.config.secret_access_key:
            session_kwargs["aws_access_key_id"] = self.config.access_key_id
            session_kwargs["aws_secret_access_key"] = self.config.secret_access_key
        self._session = aioboto3.Session(**session_kwargs)

        client_kwargs: dict[str, Any] = {
            "config": Config(
                connect_timeout=self.config.connect_timeout_seconds,
                read_timeout=self.config.read_timeout_seconds,
                retries={"total_max_attempts": 1, "mode": "standard"},
            ),
        }
        if self.config.region:
            client_kwargs["region_name"] = self.config.region
        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url

        try:
            self._client_context = self._session.client("s3", **client_kwargs)
            self._client = await self._client_context.__aenter__()
            await self._client.head_bucket(Bucket=self.config.bucket)
            logger.info(f"S3 blob storage initialized: {self._endpoint}")
        except ClientError as e:
            await self.close()
            if _error_code(e) in AUTH_FAILURE_CODES:
                raise AuthenticationError(self._endpoint, str(e)) from e
            raise StorageConnectionError(self._endpoint, e) from e
        except Exception as e:
            await self.close()
            raise StorageConnectionError(self._endpoint, e) from e

    async def close(self) -> None:
        """Close the client. Safe to call multiple times."""
        if self._client_context is not None:
            await self._client_context.__aexit__(None, None, None)
        self._client_context = None
        self._client = None
        self._session = None

    def _get_client(self) -> Any:
        if self._client is None:
            raise StoreNotInitializedError("S3BlobBackend")
        return self._client

    async def get(self, namespaced_key: str) -> bytes | None:
        client = self._get_client()
        try:
            response = await client.get_object(Bucket=self.config.bucket, Key=namespaced_key)
            async with response["Body"] as body:
                # Payloads were capped when written, so read to completion
                return await read_bounded(body.iter_chunks())
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return None
            raise StorageIOError("get_blob", namespaced_key, e) from e
        except (BotoCoreError, aiohttp.ClientError) as e:
            raise StorageIOError("get_blob", namespaced_key, e) from e

    async def put(self, namespaced_key: str, data: bytes) -> None:
        client = self._get_client()
        try:
            await client.put_object(
                Bucket=self.config.bucket,
                Key=namespaced_key,
                Body=data,
                ContentType=CONTENT_TYPE,
            )
        except (BotoCoreError, ClientError, aiohttp.ClientError) as e:
            raise StorageIOError("put_blob", namespaced_key, e) from e

    async def delete(self, namespaced_key: str) -> None:
        client = self._get_client()
        try:
            await client.delete_object(Bucket=self.config.bucket, Key=namespaced_key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return
            raise StorageIOError("delete_blob", namespaced_key, e) from e
        except (BotoCoreError, aiohttp.ClientError) as e:
            raise StorageIOError("delete_blob", namespaced_key, e) from e

    async def list_keys(self, tenant_id: int) -> set[str]:
        """List the tenant's objects, following continuation tokens."""
        client = self._get_client()
        prefix = namespace_key(tenant_id, "")
        keys: set[str] = set()
        list_kwargs: dict[str, Any] = {"Bucket": self.config.bucket, "Prefix": prefix}
        try:
            while True:
                response = await client.list_objects_v2(**list_kwargs)
                for obj in response.get("Contents", []):
                    keys.add(obj["Key"][len(prefix) :])
                cursor = response.get("NextContinuationToken")
                if not response.get("IsTruncated") or not cursor:
                    break
                list_kwargs["ContinuationToken"] = cursor
        except (BotoCoreError, ClientError, aiohttp.ClientError) as e:
            raise StorageIOError("list_blobs", prefix, e) from e
        return keys
