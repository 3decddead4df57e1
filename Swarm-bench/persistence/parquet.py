"""
Run records as Parquet files: one file per node (or per simulated fleet).
"""

import os
import logging
from datetime import datetime
from typing import Iterable, List, Optional

import pandas as pd

from persistence.base import MetricsSink
from persistence.record import RunRecord

logger = logging.getLogger(__name__)


def _with_nullable_wave(df: pd.DataFrame) -> pd.DataFrame:
    # Producers and passive nodes have no wave
    if len(df) > 0 and 'wave' in df.columns:
        df['wave'] = df['wave'].astype('Int64')
    return df


def load_records(paths: Iterable[str]) -> Optional[pd.DataFrame]:
    """Concatenate the run records of several Parquet files.

    Unreadable files are logged and skipped.

    Returns:
        One DataFrame with every record, or None if nothing could be read
    """
    frames = []
    for path in paths:
        try:
            frames.append(pd.read_parquet(path))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load {path}: {e}")
    if not frames:
        return None
    return _with_nullable_wave(pd.concat(frames, ignore_index=True))


class ParquetPersistence(MetricsSink):
    """Keeps a node's run records in memory until ``save_to_file``.

    Attributes:
        output_dir: Directory the Parquet file is written to
        records: Records emitted so far, in emission order
    """

    def __init__(self, output_dir: str = "results"):
        self.output_dir: str = output_dir
        self.records: List[RunRecord] = []
        os.makedirs(output_dir, exist_ok=True)

    def store_record(self, record: RunRecord) -> None:
        self.records.append(record)

    def to_dataframe(self) -> pd.DataFrame:
        return _with_nullable_wave(pd.DataFrame([record.to_dict() for record in self.records]))

    def save_to_file(self, filename_prefix: str = "benchmark") -> Optional[str]:
        """Write ``<output_dir>/<prefix>_<YYYYmmdd_HHMMSS>.parquet``.

        Returns:
            The written path, or None when no record was emitted
        """
        if not self.records:
            logger.info("No run records to save")
            return None

        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = os.path.join(self.output_dir, f"{filename_prefix}_{stamp}.parquet")
        self.to_dataframe().to_parquet(path, index=False)
        logger.info(f"Saved {len(self.records)} run records to {path}")
        return path
