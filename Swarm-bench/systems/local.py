"""
Content-addressed directory transfer provider.
"""

import asyncio
import logging
import os
import shutil
import tempfile

from common.errors import TransferError
from configuration import STREAM_CHUNK_SIZE
from systems.base import TransferProvider, ContentStream, compute_content_id

logger = logging.getLogger(__name__)


class LocalTransferProvider(TransferProvider):
    """Stores published files as ``<store_dir>/<content_id>``.

    Nodes share content by pointing at the same directory (a shared volume or
    a single host).
    """

    name = "local"

    def __init__(self, store_dir: str):
        super().__init__()
        self.store_dir = store_dir
        os.makedirs(store_dir, exist_ok=True)
        logger.info(f"Initialized local content store at {store_dir}")

    def _path(self, content_id: str) -> str:
        if os.sep in content_id or content_id.startswith('.'):
            raise TransferError(f"Invalid content id: {content_id}")
        return os.path.join(self.store_dir, content_id)

    def _store(self, path: str) -> str:
        content_id = compute_content_id(path)
        target = self._path(content_id)
        if os.path.exists(target):
            return content_id
        fd, tmp_path = tempfile.mkstemp(dir=self.store_dir, prefix='.publish-')
        os.close(fd)
        try:
            shutil.copyfile(path, tmp_path)
            os.replace(tmp_path, target)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return content_id

    async def publish(self, path: str) -> str:
        try:
            content_id = await asyncio.to_thread(self._store, path)
        except OSError as e:
            raise TransferError(f"Failed to publish {path}: {e}") from e
        self._metrics['published'] += 1
        logger.debug(f"Published {path} as {content_id}")
        return content_id

    async def fetch(self, content_id: str) -> ContentStream:
        path = self._path(content_id)
        self._metrics['fetches'] += 1
        try:
            f = open(path, 'rb')
            expected_size = os.fstat(f.fileno()).st_size
        except OSError as e:
            self._metrics['failed_fetches'] += 1
            raise TransferError(f"Content {content_id} not available: {e}") from e

        async def chunks():
            try:
                while True:
                    chunk = await asyncio.to_thread(f.read, STREAM_CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk
            finally:
                f.close()

        return ContentStream(content_id, chunks(), expected_size=expected_size)

    async def remove(self, content_id: str) -> None:
        path = self._path(content_id)
        try:
            os.unlink(path)
            logger.debug(f"Removed {content_id} from local store")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise TransferError(f"Failed to remove {content_id}: {e}") from e
