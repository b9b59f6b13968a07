import asyncio
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from photomatch.storage.base import BaseBlobStore
from photomatch.storage.exceptions import StorageError, StorageNetworkError
from photomatch.storage.models import ListPage

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class S3BlobStore(BaseBlobStore):
    """Amazon S3 object store; blocking boto3 calls run in worker threads."""

    PAGE_SIZE = 1000

    def __init__(
        self,
        *,
        bucket_name: str,
        region: str,
        access_key_id: str = "",
        secret_access_key: str = "",
        client: Any | None = None,
    ) -> None:
        if not bucket_name:
            raise ValueError("s3_bucket_name is required for storage_backend=s3")
        self._bucket = bucket_name
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
        )

    @property
    def bucket_name(self) -> str:
        return self._bucket

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        await self._call(
            self._client.put_object,
            Bucket=self._bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        return key

    async def list_keys(self, prefix: str, continuation_token: str | None = None) -> ListPage:
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Prefix": prefix,
            "MaxKeys": self.PAGE_SIZE,
        }
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        response = await self._call(self._client.list_objects_v2, **params)
        items = [item["Key"] for item in response.get("Contents", []) if item.get("Key")]
        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return ListPage(items=items, next_token=next_token)

    async def head(self, key: str) -> bool:
        try:
            await self._call(self._client.head_object, Bucket=self._bucket, Key=key)
        except StorageError as exc:
            cause = exc.__cause__
            if isinstance(cause, ClientError) and _error_code(cause) in _MISSING_CODES:
                return False
            raise
        return True

    async def _call(self, func: Any, /, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, **kwargs)
        except EndpointConnectionError as exc:
            raise StorageNetworkError(f"S3 unreachable: {exc}") from exc
        except ClientError as exc:
            raise StorageError(f"S3 error ({_error_code(exc)}): {exc}") from exc
        except BotoCoreError as exc:
            raise StorageNetworkError(f"S3 transport error: {exc}") from exc


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))
