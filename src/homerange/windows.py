"""
Time-window subsetting of group datasets (e.g. early / mid / late season).
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from .io import GroupDataset

logger = logging.getLogger(__name__)

DEFAULT_LABELS = ("early", "mid", "late")

DateLike = Union[str, datetime, np.datetime64, pd.Timestamp]


def _as_datetime64(value: DateLike) -> np.datetime64:
    ts = pd.Timestamp(value)
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return np.datetime64(ts.to_datetime64(), 'ns')


def filter_time_window(
    dataset: GroupDataset,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None
) -> GroupDataset:
    """
    Points with start <= timestamp < end (open bounds when None).

    Points without a timestamp are never selected.
    """
    ts = dataset.timestamps.astype('datetime64[ns]')
    mask = ~np.isnat(ts)
    if start is not None:
        mask &= ts >= _as_datetime64(start)
    if end is not None:
        mask &= ts < _as_datetime64(end)
    return dataset.subset(mask)


def split_by_dates(
    dataset: GroupDataset,
    thresholds: Sequence[DateLike],
    labels: Optional[Sequence[str]] = None
) -> "OrderedDict[str, GroupDataset]":
    """
    Split a dataset at fixed calendar-date thresholds.

    Args:
        dataset: Projected group points with timestamps
        thresholds: Increasing dates; k thresholds give k + 1 windows
        labels: Window names (default early/mid/late for two thresholds,
                otherwise window_0, window_1, ...)

    Returns:
        Ordered mapping of label to subset
    """
    bounds = [_as_datetime64(t) for t in thresholds]
    if any(b2 <= b1 for b1, b2 in zip(bounds, bounds[1:])):
        raise ValueError("thresholds must be strictly increasing")

    n_windows = len(bounds) + 1
    if labels is None:
        labels = DEFAULT_LABELS if n_windows == len(DEFAULT_LABELS) else [
            f"window_{i}" for i in range(n_windows)
        ]
    if len(labels) != n_windows:
        raise ValueError(f"{len(bounds)} thresholds need {n_windows} labels, got {len(labels)}")

    edges = [None] + bounds + [None]
    windows = OrderedDict()
    for label, start, end in zip(labels, edges[:-1], edges[1:]):
        windows[label] = filter_time_window(dataset, start, end)
        logger.debug(f"Window '{label}' of '{dataset.group_id}': {windows[label].n_points} points")

    n_undated = int(np.isnat(dataset.timestamps.astype('datetime64[ns]')).sum())
    if n_undated:
        logger.warning(f"{n_undated} points of '{dataset.group_id}' have no timestamp and were skipped")
    return windows
