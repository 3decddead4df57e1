"""
Tests for transfer providers, content streams and the raw TCP baseline.
"""

import os
import sys
import tempfile
import unittest
from unittest.mock import AsyncMock, Mock

from botocore.exceptions import ClientError

# Add the parent directory to Python path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from algorithms.baseline import BaselineServer, baseline_fetch
from common.errors import BaselineError, TransferError
from common.files import generate_random_files
from common.storage_factory import create_transfer_provider
from configuration import CONTENT_ID_PREFIX
from systems.base import ContentStream, compute_content_id
from systems.local import LocalTransferProvider
from systems.s3 import S3TransferProvider


async def chunks_of(*parts):
    for part in parts:
        yield part


class TestContentStream(unittest.IsolatedAsyncioTestCase):

    async def test_drain_counts_bytes_once(self):
        stream = ContentStream("sha256-x", chunks_of(b"abc", b"de"))
        self.assertEqual(await stream.drain(), 5)
        self.assertEqual(stream.size, 5)
        with self.assertRaises(TransferError):
            await stream.drain()

    async def test_short_stream_is_an_error(self):
        stream = ContentStream("sha256-x", chunks_of(b"abc"), expected_size=10)
        with self.assertRaises(TransferError):
            await stream.drain()


class TestLocalTransferProvider(unittest.IsolatedAsyncioTestCase):
    """Content-addressed directory provider."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.provider = LocalTransferProvider(os.path.join(self.tmp.name, "store"))
        self.file = generate_random_files(os.path.join(self.tmp.name, "inputs"), [200_000], seed=3)[0]

    def tearDown(self):
        self.tmp.cleanup()

    async def test_publish_is_content_addressed(self):
        first = await self.provider.publish(self.file.path)
        second = await self.provider.publish(self.file.path)
        self.assertEqual(first, second)
        self.assertTrue(first.startswith(CONTENT_ID_PREFIX))
        self.assertEqual(first, compute_content_id(self.file.path))
        self.assertEqual(self.provider.get_metrics()['published'], 2)

    async def test_fetch_writes_identical_bytes(self):
        content_id = await self.provider.publish(self.file.path)
        stream = await self.provider.fetch(content_id)
        target = os.path.join(self.tmp.name, "download.bin")

        self.assertEqual(await stream.write_to(target), self.file.size)
        self.assertEqual(self.provider.size(stream), self.file.size)
        self.assertEqual(compute_content_id(target), content_id)

    async def test_size_before_read_is_an_error(self):
        content_id = await self.provider.publish(self.file.path)
        stream = await self.provider.fetch(content_id)
        with self.assertRaises(TransferError):
            self.provider.size(stream)
        await stream.drain()

    async def test_fetch_unknown_content(self):
        with self.assertRaises(TransferError):
            await self.provider.fetch(CONTENT_ID_PREFIX + "0" * 64)
        self.assertEqual(self.provider.get_metrics()['failed_fetches'], 1)

    async def test_remove_is_idempotent(self):
        content_id = await self.provider.publish(self.file.path)
        await self.provider.remove(content_id)
        await self.provider.remove(content_id)
        with self.assertRaises(TransferError):
            await self.provider.fetch(content_id)

    async def test_path_like_content_ids_rejected(self):
        with self.assertRaises(TransferError):
            await self.provider.fetch("../etc/passwd")


class TestS3TransferProvider(unittest.IsolatedAsyncioTestCase):
    """S3 provider against a mocked client."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.file = generate_random_files(self.tmp.name, [1000], seed=1)[0]
        self.provider = S3TransferProvider("", "bench-bucket", {}, prefix="runs")
        self.provider.client = AsyncMock()

    def tearDown(self):
        self.tmp.cleanup()

    async def test_publish_uploads_missing_object(self):
        self.provider.client.head_object.side_effect = ClientError(
            {'Error': {'Code': '404'}, 'ResponseMetadata': {'HTTPStatusCode': 404}}, 'HeadObject'
        )
        content_id = await self.provider.publish(self.file.path)
        self.provider.client.upload_file.assert_awaited_once_with(
            self.file.path, "bench-bucket", f"runs/{content_id}"
        )

    async def test_publish_skips_existing_object(self):
        await self.provider.publish(self.file.path)
        self.provider.client.upload_file.assert_not_awaited()

    async def test_fetch_streams_body(self):
        body = Mock()
        body.read = AsyncMock(side_effect=[b"hello", b""])
        self.provider.client.get_object.return_value = {'Body': body, 'ContentLength': 5}

        stream = await self.provider.fetch("sha256-abc")
        self.assertEqual(await stream.drain(), 5)
        body.close.assert_called_once()

    async def test_fetch_error_is_transfer_error(self):
        self.provider.client.get_object.side_effect = ClientError(
            {'Error': {'Code': 'NoSuchKey'}, 'ResponseMetadata': {'HTTPStatusCode': 404}}, 'GetObject'
        )
        with self.assertRaises(TransferError):
            await self.provider.fetch("sha256-abc")

    async def test_requires_context_manager(self):
        self.provider.client = None
        with self.assertRaises(RuntimeError):
            await self.provider.fetch("sha256-abc")


class TestStorageFactory(unittest.TestCase):

    def test_local_provider(self):
        with tempfile.TemporaryDirectory() as tmp:
            provider = create_transfer_provider("LOCAL", store_dir=tmp)
            self.assertIsInstance(provider, LocalTransferProvider)

    def test_s3_provider(self):
        provider = create_transfer_provider("s3", bucket_name="bench-bucket")
        self.assertIsInstance(provider, S3TransferProvider)

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            create_transfer_provider("ipfs")


class TestBaseline(unittest.IsolatedAsyncioTestCase):
    """Raw TCP baseline transfer."""

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.file = generate_random_files(self.tmp.name, [300_000], seed=9)[0]
        self.server = BaselineServer("127.0.0.1")
        self.server.add_file("sha256-known", self.file.path)
        self.port = await self.server.start()

    async def asyncTearDown(self):
        await self.server.stop()
        self.tmp.cleanup()

    async def test_fetch_known_content(self):
        latency_ns, received = await baseline_fetch("127.0.0.1", self.port, "sha256-known")
        self.assertEqual(received, self.file.size)
        self.assertGreater(latency_ns, 0)

    async def test_unknown_content_refused(self):
        with self.assertRaises(BaselineError):
            await baseline_fetch("127.0.0.1", self.port, "sha256-unknown")

    async def test_connection_refused(self):
        await self.server.stop()
        with self.assertRaises(BaselineError):
            await baseline_fetch("127.0.0.1", self.port, "sha256-known")


if __name__ == '__main__':
    unittest.main()
