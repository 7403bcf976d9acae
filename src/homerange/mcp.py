"""
Minimum Convex Polygon (MCP) home-range estimation.

Outlier trimming follows the conventional rule: compute the mean centroid,
keep the points whose distance to it is at or below the `percent` quantile
of all distances, and take the convex hull of the kept points.
"""

import logging
from typing import Iterable, List, Tuple, Union

import numpy as np
import pandas as pd
from shapely.geometry import MultiPoint, Polygon

from .config import AreaUnit
from .errors import InsufficientDataError
from .io import GroupDataset
from .results import HomeRange

logger = logging.getLogger(__name__)

MIN_MCP_POINTS = 3
DEFAULT_MCP_PERCENTS = tuple(range(50, 101, 5))


def _check_percent(percent: float) -> float:
    percent = float(percent)
    if not 0 < percent <= 100:
        raise ValueError(f"percent must be in (0, 100], got {percent}")
    return percent


def trim_outliers(points_m: np.ndarray, percent: float) -> np.ndarray:
    """
    Keep the points closest to the centroid.

    Args:
        points_m: Nx2 array of points in meters
        percent: Percentage of points to keep (100 keeps every point)

    Returns:
        Boolean mask of kept points
    """
    percent = _check_percent(percent)
    centroid = points_m.mean(axis=0)
    dists = np.linalg.norm(points_m - centroid, axis=1)

    if percent >= 100:
        return np.ones(len(points_m), dtype=bool)

    threshold = np.quantile(dists, percent / 100.0)
    return dists <= threshold


def _trimmed_hull(points_m: np.ndarray, percent: float) -> Tuple[Polygon, int]:
    """Hull of the kept points and how many points were kept."""
    points_m = np.asarray(points_m, dtype=np.float64)
    if len(points_m) < MIN_MCP_POINTS:
        raise InsufficientDataError(
            f"MCP needs at least {MIN_MCP_POINTS} points, got {len(points_m)}"
        )

    kept = points_m[trim_outliers(points_m, percent)]
    if len(kept) < MIN_MCP_POINTS:
        raise InsufficientDataError(
            f"Only {len(kept)} points remain at {percent}% (need {MIN_MCP_POINTS})"
        )

    hull = MultiPoint([tuple(p) for p in kept]).convex_hull
    if not isinstance(hull, Polygon) or hull.is_empty or hull.area <= 0:
        raise InsufficientDataError(
            f"Kept points are identical or collinear; cannot form a polygon ({hull.geom_type})"
        )
    return hull, len(kept)


def mcp_polygon(points_m: np.ndarray, percent: float = 95.0) -> Polygon:
    """
    Convex hull of the points kept at a given inclusion percentage.

    Raises:
        InsufficientDataError: if fewer than 3 points remain or they are collinear
    """
    return _trimmed_hull(points_m, percent)[0]


def mcp(
    dataset: GroupDataset,
    percent: float = 95.0,
    unit: Union[str, AreaUnit] = AreaUnit.KM2
) -> HomeRange:
    """
    Minimum convex polygon home range of one group.

    Args:
        dataset: Projected group points
        percent: Inclusion percentage (0, 100]
        unit: Output area unit ("m2", "km2" or "ha")

    Returns:
        HomeRange with the hull polygon in UTM meters
    """
    unit = AreaUnit.parse(unit)
    percent = _check_percent(percent)
    polygon, n_kept = _trimmed_hull(dataset.points_m, percent)

    result = HomeRange(
        group_id=dataset.group_id,
        method="mcp",
        percent=percent,
        polygon=polygon,
        area=unit.from_m2(polygon.area),
        unit=unit,
        n_points=n_kept
    )
    logger.info(f"MCP {percent:g}% for '{dataset.group_id}': "
                f"{result.area:.4f} {unit.value} ({n_kept}/{dataset.n_points} points)")
    return result


def mcp_grouped(
    datasets: Iterable[GroupDataset],
    percent: float = 95.0,
    unit: Union[str, AreaUnit] = AreaUnit.KM2
) -> List[HomeRange]:
    """One MCP per group id, in input order."""
    return [mcp(dataset, percent, unit) for dataset in datasets]


def mcp_area(
    dataset: GroupDataset,
    percents: Iterable[float] = DEFAULT_MCP_PERCENTS,
    unit: Union[str, AreaUnit] = AreaUnit.KM2
) -> pd.DataFrame:
    """
    MCP area as a function of the inclusion percentage.

    Returns:
        DataFrame with columns percent, area (indexed in input order)
    """
    unit = AreaUnit.parse(unit)
    rows = []
    for percent in percents:
        polygon = mcp_polygon(dataset.points_m, percent)
        rows.append({"percent": float(percent), "area": unit.from_m2(polygon.area)})

    df = pd.DataFrame(rows, columns=["percent", "area"])
    df.attrs["unit"] = unit.value
    df.attrs["group_id"] = dataset.group_id
    return df
