"""
S3-compatible transfer provider (AWS S3, Cloudflare R2, MinIO).
"""

import asyncio
import logging

import aioboto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError

from common.errors import TransferError
from configuration import STREAM_CHUNK_SIZE
from systems.base import TransferProvider, ContentStream, compute_content_id

# Suppress boto3/botocore logging before any client is created
logging.getLogger('botocore').setLevel(logging.CRITICAL)
logging.getLogger('boto3').setLevel(logging.CRITICAL)
logging.getLogger('aioboto3').setLevel(logging.CRITICAL)

logger = logging.getLogger(__name__)


class S3TransferProvider(TransferProvider):
    """Publishes files as objects keyed by content id under ``prefix``."""

    name = "s3"

    def __init__(self, endpoint: str, bucket_name: str, credentials: dict, prefix: str = "swarm-bench"):
        super().__init__()
        if not bucket_name:
            raise ValueError("S3 transfer provider needs a bucket name")
        self.endpoint = endpoint or None
        self.bucket_name = bucket_name
        self.prefix = prefix.strip('/')
        self._config = Config(
            connect_timeout=5,
            read_timeout=60,
            retries={
                'max_attempts': 3,
                'mode': 'adaptive',
            },
            tcp_keepalive=True,
        )
        self.session = aioboto3.Session(
            aws_access_key_id=credentials.get("access_key_id"),
            aws_secret_access_key=credentials.get("secret_access_key"),
            region_name=credentials.get("region_name", "auto"),
        )
        self.client = None
        logger.info(f"Initialized S3 transfer provider for bucket {bucket_name} ({endpoint or 'default endpoint'})")

    async def __aenter__(self):
        """Async context manager entry."""
        self.client = await self.session.client(
            "s3",
            endpoint_url=self.endpoint,
            config=self._config,
        ).__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client:
            await self.client.__aexit__(exc_type, exc_val, exc_tb)
            self.client = None

    def _key(self, content_id: str) -> str:
        return f"{self.prefix}/{content_id}" if self.prefix else content_id

    def _require_client(self):
        if not self.client:
            raise RuntimeError("S3 client not initialized. Use async context manager.")

    async def _exists(self, key: str) -> bool:
        try:
            await self.client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            status_code = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode', 0)
            if status_code == 404:
                return False
            raise

    async def publish(self, path: str) -> str:
        self._require_client()
        content_id = await asyncio.to_thread(compute_content_id, path)
        key = self._key(content_id)
        try:
            if not await self._exists(key):
                await self.client.upload_file(path, self.bucket_name, key)
        except (ClientError, BotoCoreError, OSError) as e:
            raise TransferError(f"Failed to publish {path} to s3://{self.bucket_name}/{key}: {e}") from e
        self._metrics['published'] += 1
        logger.debug(f"Published {path} as s3://{self.bucket_name}/{key}")
        return content_id

    async def fetch(self, content_id: str) -> ContentStream:
        self._require_client()
        key = self._key(content_id)
        self._metrics['fetches'] += 1
        try:
            response = await self.client.get_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            self._metrics['failed_fetches'] += 1
            raise TransferError(f"Failed to fetch s3://{self.bucket_name}/{key}: {e}") from e

        body = response['Body']

        async def chunks():
            try:
                while True:
                    chunk = await body.read(STREAM_CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk
            finally:
                body.close()

        return ContentStream(content_id, chunks(), expected_size=response.get('ContentLength'))

    async def remove(self, content_id: str) -> None:
        self._require_client()
        key = self._key(content_id)
        try:
            await self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise TransferError(f"Failed to delete s3://{self.bucket_name}/{key}: {e}") from e
