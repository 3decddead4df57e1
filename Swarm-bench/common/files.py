"""
Files exercised by the benchmark.
"""

import logging
import os
import random
from dataclasses import dataclass
from typing import Iterable, List

from common.errors import ConfigurationError
from configuration import STREAM_CHUNK_SIZE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileUnderTest:
    """One payload of the ordered file list."""

    index: int
    path: str
    size: int


def load_test_files(paths: Iterable[str]) -> List[FileUnderTest]:
    """Build the file list from explicit paths and/or directories.

    Directories are expanded to the regular files they contain. The result is
    sorted by (size, path) so every node iterates the same order.
    """
    found = []
    for path in paths:
        if os.path.isdir(path):
            for name in os.listdir(path):
                full = os.path.join(path, name)
                if os.path.isfile(full):
                    found.append(full)
        elif os.path.isfile(path):
            found.append(path)
        else:
            raise ConfigurationError(f"Test file not found: {path}")

    if not found:
        raise ConfigurationError("No test files found")

    ordered = sorted(set(found), key=lambda p: (os.path.getsize(p), p))
    files = [FileUnderTest(index=i, path=p, size=os.path.getsize(p)) for i, p in enumerate(ordered)]
    logger.info(f"Loaded {len(files)} test files: {[f.size for f in files]} bytes")
    return files


def generate_random_files(output_dir: str, sizes: Iterable[int], seed: int) -> List[FileUnderTest]:
    """Write one pseudo-random file per size.

    The content depends only on ``seed`` and the size, so every producer that
    generates the same list publishes identical bytes.
    """
    os.makedirs(output_dir, exist_ok=True)
    files = []
    for index, size in enumerate(sizes):
        if size <= 0:
            raise ConfigurationError(f"File size must be positive, got {size}")
        rng = random.Random(f"{seed}-{size}")
        path = os.path.join(output_dir, f"random-{seed}-{size}.bin")
        with open(path, 'wb') as f:
            remaining = size
            while remaining > 0:
                n = min(remaining, STREAM_CHUNK_SIZE)
                f.write(rng.randbytes(n))
                remaining -= n
        files.append(FileUnderTest(index=index, path=path, size=size))
    logger.info(f"Generated {len(files)} random files in {output_dir}")
    return files
