"""
Factory module for creating transfer provider instances.
"""

import logging

from systems.local import LocalTransferProvider
from systems.s3 import S3TransferProvider
from configuration import (
    STORE_DIR,
    S3_ENDPOINT,
    S3_PREFIX,
    BUCKET_NAME,
    AWS_ACCESS_KEY_ID,
    AWS_SECRET_ACCESS_KEY,
    AWS_REGION,
)

logger = logging.getLogger(__name__)


def create_transfer_provider(storage_type: str, store_dir: str = None, bucket_name: str = None):
    """Create and return the transfer provider for ``storage_type``.

    Args:
        storage_type: Provider type ('local' or 's3')
        store_dir: Content directory for the local provider (default: STORE_DIR)
        bucket_name: Bucket for the S3 provider (default: BUCKET_NAME)

    Returns:
        Transfer provider instance (LocalTransferProvider or S3TransferProvider)

    Raises:
        ValueError: If storage_type is not supported
    """
    storage_type = storage_type.lower()

    if storage_type == "local":
        return LocalTransferProvider(store_dir or STORE_DIR)

    elif storage_type == "s3":
        credentials = {
            "access_key_id": AWS_ACCESS_KEY_ID,
            "secret_access_key": AWS_SECRET_ACCESS_KEY,
            "region_name": AWS_REGION,
        }
        return S3TransferProvider(S3_ENDPOINT, bucket_name or BUCKET_NAME, credentials, prefix=S3_PREFIX)

    else:
        raise ValueError(f"Unsupported storage type: {storage_type}. Must be 'local' or 's3'.")
