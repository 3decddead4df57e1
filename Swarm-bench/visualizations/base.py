"""
Row selection shared by the result plotters.
"""

import logging
from typing import List, Optional

import pandas as pd

logger = logging.getLogger(__name__)


class BasePlotter:
    """Holds the run records to plot and where the images go."""

    def __init__(self, data: pd.DataFrame, output_dir: str):
        self.data = data
        self.output_dir = output_dir

    def filter_consumer_records(self) -> Optional[pd.DataFrame]:
        """Rows of consumers, i.e. the ones that carry a wave."""
        if self.data is None or self.data.empty:
            return None
        return self.data[self.data['wave'].notna()]

    def filter_successful_fetches(self) -> Optional[pd.DataFrame]:
        """Consumer rows with a successful fetch, plus a ``fetch_latency_ms`` column."""
        consumers = self.filter_consumer_records()
        if consumers is None:
            return None
        fetched = consumers[consumers['fetch_latency_ns'] > 0]
        return fetched.assign(fetch_latency_ms=fetched['fetch_latency_ns'] / 1e6)

    def get_unique_waves(self) -> List[int]:
        consumers = self.filter_consumer_records()
        if consumers is None or consumers.empty:
            return []
        return sorted(int(w) for w in consumers['wave'].unique())
