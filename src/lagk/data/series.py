"""
pandas adapter for the reach inflow series.
"""
import logging
from typing import Iterator, Optional

import numpy as np
import pandas as pd

from lagk.core.constants import MISSING_VALUE
from lagk.core.exceptions import DataSourceError, ErrorContext
from lagk.core.types import Flow, TimeLike

logger = logging.getLogger(__name__)


class PandasInflowSeries:
    """
    Inflow series backed by a time-indexed ``pd.Series``.

    Times absent from the index and NaN values read as the missing value.
    """

    def __init__(self, series: pd.Series, missing_value: float = MISSING_VALUE):
        if not isinstance(series.index, pd.DatetimeIndex):
            series = series.copy()
            series.index = pd.DatetimeIndex(series.index)
        if not series.index.is_unique:
            duplicates = series.index[series.index.duplicated()].unique()
            raise DataSourceError(
                f"Inflow series has duplicate times: {[str(t) for t in duplicates[:5]]}",
                ErrorContext(component="PandasInflowSeries", operation="init")
            )
        self.series = series.sort_index().astype(float)
        self.missing_value = missing_value

    def get_value(self, time: TimeLike) -> Flow:
        value = self.series.get(pd.Timestamp(time), np.nan)
        if pd.isna(value):
            return self.missing_value
        return float(value)

    def values_from(self, start: Optional[TimeLike] = None) -> Iterator[Flow]:
        """Iterate values from ``start`` onward, missing values substituted"""
        data = self.series if start is None else self.series.loc[pd.Timestamp(start):]
        for value in data.to_numpy():
            yield self.missing_value if np.isnan(value) else float(value)

    @property
    def start(self) -> pd.Timestamp:
        return self.series.index[0]

    @property
    def end(self) -> pd.Timestamp:
        return self.series.index[-1]

    def __len__(self) -> int:
        return len(self.series)
