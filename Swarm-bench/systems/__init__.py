"""
Transfer providers exercised by the benchmark.
"""

from .base import TransferProvider, ContentStream, compute_content_id
from .local import LocalTransferProvider

__all__ = ['TransferProvider', 'ContentStream', 'compute_content_id', 'LocalTransferProvider']
