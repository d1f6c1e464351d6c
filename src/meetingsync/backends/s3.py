"""
S3-compatible backend (AWS S3, Cloudflare R2, MinIO, ...)

Each key is stored as <prefix><key>.json in one bucket. boto3 is
synchronous, so calls run in a worker thread to keep the event loop free.
"""

from typing import Optional, Dict, Any
import asyncio
import json
import logging
import os

from .base import BackendAdapter
from ..errors import BackendError, BackendAuthError, BackendConnectionError, ConfigurationError
from ..models import SyncProvider

logger = logging.getLogger(__name__)

# S3/Boto3 imports
try:
    import boto3
    from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
    BOTO3_AVAILABLE = True
except ImportError:
    BOTO3_AVAILABLE = False

AUTH_ERROR_CODES = {"AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken"}
MISSING_ERROR_CODES = {"NoSuchKey", "404", "NotFound"}


class S3Backend(BackendAdapter):
    """
    Backend storing snapshots as objects in an S3 bucket.

    Config keys:
        bucket: Bucket name (required)
        prefix: Key prefix (e.g. "meetingflow/")
        endpoint: S3-compatible endpoint URL (for R2, MinIO, etc.)
        accessKey / secretKey: Credentials (default: AWS_ACCESS_KEY_ID /
                               AWS_SECRET_ACCESS_KEY env vars or IAM role)
        region: Region name (default "auto")
    """

    provider = SyncProvider.S3

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)

        if not BOTO3_AVAILABLE:
            raise ImportError(
                "boto3 package required for S3 backend. "
                "Install with: pip install meetingsync[s3]"
            )

        self.bucket = self.config.get("bucket")
        if not self.bucket:
            raise ConfigurationError("S3 backend requires a 'bucket' setting")

        prefix = self.config.get("prefix", "")
        self.prefix = prefix.rstrip("/") + "/" if prefix else ""
        self.endpoint = self.config.get("endpoint")
        self.region = self.config.get("region", "auto")
        self.access_key = self.config.get("accessKey") or os.getenv("AWS_ACCESS_KEY_ID")
        self.secret_key = self.config.get("secretKey") or os.getenv("AWS_SECRET_ACCESS_KEY")

        self._client = self._create_client()

    def _create_client(self) -> Any:
        """Create and configure the S3 client"""
        client_kwargs = {
            "service_name": "s3",
            "region_name": self.region,
        }
        if self.endpoint:
            client_kwargs["endpoint_url"] = self.endpoint
        if self.access_key and self.secret_key:
            client_kwargs["aws_access_key_id"] = self.access_key
            client_kwargs["aws_secret_access_key"] = self.secret_key

        try:
            return boto3.client(**client_kwargs)
        except Exception as e:
            raise ConfigurationError(f"Failed to create S3 client: {e}") from e

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}{key}.json"

    def _translate(self, error: Exception, action: str) -> BackendError:
        """Map botocore failures onto backend errors"""
        if isinstance(error, NoCredentialsError):
            return BackendAuthError(f"No AWS credentials found while trying to {action}")
        if isinstance(error, ClientError):
            code = error.response.get("Error", {}).get("Code", "Unknown")
            if code in AUTH_ERROR_CODES:
                return BackendAuthError(f"Access denied while trying to {action}: {code}")
            if code == "NoSuchBucket":
                return BackendError(f"Bucket '{self.bucket}' does not exist")
            return BackendError(f"Failed to {action}: {error}")
        if isinstance(error, BotoCoreError):
            return BackendConnectionError(f"S3 unreachable while trying to {action}: {error}")
        return BackendError(f"Failed to {action}: {error}")

    @staticmethod
    def _is_missing(error: Exception) -> bool:
        if not isinstance(error, ClientError):
            return False
        return error.response.get("Error", {}).get("Code") in MISSING_ERROR_CODES

    async def _upload(self, key: str, payload: Dict[str, Any]) -> Optional[str]:
        full_key = self._make_key(key)
        body = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=full_key,
                Body=body,
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, f"upload {full_key}") from e
        return full_key

    async def _download(self, key: str) -> Optional[Dict[str, Any]]:
        full_key = self._make_key(key)
        try:
            response = await asyncio.to_thread(self._client.get_object, Bucket=self.bucket, Key=full_key)
            content = await asyncio.to_thread(response["Body"].read)
        except (ClientError, BotoCoreError) as e:
            if self._is_missing(e):
                return None
            raise self._translate(e, f"download {full_key}") from e

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise BackendError(f"Object {full_key} is not valid JSON: {e}") from e

    async def _delete(self, key: str) -> bool:
        full_key = self._make_key(key)
        try:
            await asyncio.to_thread(self._client.head_object, Bucket=self.bucket, Key=full_key)
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=full_key)
        except (ClientError, BotoCoreError) as e:
            if self._is_missing(e):
                return False
            raise self._translate(e, f"delete {full_key}") from e
        return True
