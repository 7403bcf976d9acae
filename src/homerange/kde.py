"""
Kernel density (utilization distribution) home-range estimation.

A bivariate normal kernel is summed over a regular grid that extends
`extent` times the data range beyond the points on each side. The home
range at p% is the smallest set of grid cells holding at least p% of the
estimated probability mass (the "volume" contour).
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Tuple, Union

import numpy as np
import pandas as pd
import shapely
from scipy.spatial.distance import cdist, pdist
from shapely.geometry.base import BaseGeometry

from .config import AreaUnit
from .errors import InsufficientDataError
from .io import GroupDataset
from .results import HomeRange

logger = logging.getLogger(__name__)

MIN_KDE_POINTS = 5
DEFAULT_GRID = 60
DEFAULT_EXTENT = 1.0
DEFAULT_KDE_PERCENTS = tuple(range(20, 96, 5))

# LSCV search range as multiples of href
LSCV_HLIM = (0.1, 1.5)
LSCV_STEPS = 40
# Pairwise distances for n points take 4n(n-1) bytes
LSCV_MAX_POINTS = 5000

# Points per block when summing kernels over the grid
_CHUNK = 2000

Bandwidth = Union[str, float]


def _check_points(points_m: np.ndarray) -> np.ndarray:
    points_m = np.asarray(points_m, dtype=np.float64)
    if points_m.ndim != 2 or points_m.shape[1] != 2:
        raise ValueError(f"Expected an Nx2 array of points, got shape {points_m.shape}")
    if len(points_m) < MIN_KDE_POINTS:
        raise InsufficientDataError(
            f"KDE needs at least {MIN_KDE_POINTS} points, got {len(points_m)}"
        )
    if np.all(np.ptp(points_m, axis=0) == 0):
        raise InsufficientDataError("All points are identical; density is undefined")
    return points_m


def href(points_m: np.ndarray) -> float:
    """
    Reference bandwidth: h = 0.5 * (sd_x + sd_y) * n^(-1/6).

    Args:
        points_m: Nx2 array of points in meters

    Returns:
        Bandwidth in meters
    """
    points_m = _check_points(points_m)
    sigma = 0.5 * (np.std(points_m[:, 0], ddof=1) + np.std(points_m[:, 1], ddof=1))
    return float(sigma * len(points_m) ** (-1.0 / 6.0))


def lscv_score(sq_dists: np.ndarray, n: int, h: float) -> float:
    """Least-squares cross-validation score for a Gaussian kernel of width h."""
    h2 = h * h
    pair_term = np.sum(np.exp(-sq_dists / (4 * h2))) / (2 * np.pi * n * n * h2)
    loo_term = 2 * np.sum(np.exp(-sq_dists / (2 * h2))) / (np.pi * n * (n - 1) * h2)
    return float(1.0 / (4 * np.pi * n * h2) + pair_term - loo_term)


def lscv(
    points_m: np.ndarray,
    hlim: Tuple[float, float] = LSCV_HLIM,
    steps: int = LSCV_STEPS,
    max_points: int = LSCV_MAX_POINTS
) -> float:
    """
    Bandwidth minimising the LSCV score over hlim * href.

    Memory grows with n^2 (all pairwise distances).

    Raises:
        ValueError: if there are more than max_points points
    """
    points_m = _check_points(points_m)
    if len(points_m) > max_points:
        raise ValueError(
            f"LSCV on {len(points_m)} points needs all pairwise distances "
            f"(limit {max_points}); use href or a fixed bandwidth in meters"
        )
    h_ref = href(points_m)
    candidates = h_ref * np.linspace(hlim[0], hlim[1], steps)

    sq_dists = pdist(points_m, 'sqeuclidean')
    n = len(points_m)
    scores = np.array([lscv_score(sq_dists, n, h) for h in candidates])

    best = int(np.argmin(scores))
    if best in (0, len(candidates) - 1):
        logger.warning(
            f"LSCV minimum at the edge of the search range (h={candidates[best]:.1f}m); "
            f"consider widening hlim"
        )
    logger.debug(f"LSCV bandwidth: {candidates[best]:.1f}m (href={h_ref:.1f}m)")
    return float(candidates[best])


def resolve_bandwidth(points_m: np.ndarray, bandwidth: Bandwidth = "href") -> Tuple[float, str]:
    """
    Turn a bandwidth mode into a value in meters.

    Args:
        bandwidth: "href", "lscv", or a positive number of meters

    Returns:
        Tuple of (h_meters, mode_label)
    """
    if isinstance(bandwidth, str):
        mode = bandwidth.strip().lower()
        if mode == "href":
            return href(points_m), "href"
        if mode == "lscv":
            return lscv(points_m), "lscv"
        try:
            bandwidth = float(mode)
        except ValueError:
            raise ValueError(f"Unknown bandwidth mode {bandwidth!r} (expected href, lscv or meters)")

    h = float(bandwidth)
    if not np.isfinite(h) or h <= 0:
        raise ValueError(f"Bandwidth must be a positive number of meters, got {bandwidth}")
    return h, "fixed"


@dataclass(frozen=True)
class UtilizationDistribution:
    """
    Kernel density on a regular grid of square cells.

    density[j, i] is the value at node (xs[i], ys[j]); each node is the
    center of a cell of side cell_size.
    """
    xs: np.ndarray
    ys: np.ndarray
    density: np.ndarray
    h: float
    cell_size: float
    n_points: int
    bandwidth_mode: str = "href"

    @property
    def shape(self) -> Tuple[int, int]:
        return self.density.shape

    def volume(self) -> np.ndarray:
        """
        Percentage of probability mass in cells at least as dense as each cell.

        Returns:
            Array shaped like density, values in (0, 100]
        """
        flat = self.density.ravel()
        order = np.argsort(-flat, kind="stable")
        cumulative = np.cumsum(flat[order])
        if cumulative[-1] <= 0:
            raise InsufficientDataError("Density vanishes on the grid; bandwidth too small")

        vud = np.empty_like(flat)
        vud[order] = cumulative / cumulative[-1] * 100.0
        return vud.reshape(self.density.shape)

    def mask(self, percent: float) -> np.ndarray:
        """
        Smallest set of densest cells holding at least percent% of the mass.

        A cell is inside when the denser cells before it hold less than
        percent%, so the cell that crosses the threshold is included.
        """
        percent = float(percent)
        if not 0 < percent <= 100:
            raise ValueError(f"percent must be in (0, 100], got {percent}")
        if percent >= 100:
            return np.ones(self.shape, dtype=bool)

        vud = self.volume()
        share = self.density / self.density.sum() * 100.0
        return vud - share < percent

    def contour(self, percent: float) -> BaseGeometry:
        """
        Region holding at least percent% of the mass, as a union of grid cells
        (UTM meters).

        Raises:
            ValueError: if no cell falls inside the contour
        """
        inside = self.mask(percent)
        if not inside.any():
            raise ValueError(f"{percent}% contour is empty; increase percent or grid resolution")

        if percent < 100 and (inside[0, :].any() or inside[-1, :].any()
                              or inside[:, 0].any() or inside[:, -1].any()):
            logger.warning(f"{percent}% contour touches the grid edge; increase extent")

        half = self.cell_size / 2.0
        x_edges = self.xs[0] - half + np.arange(len(self.xs) + 1) * self.cell_size
        y_edges = self.ys[0] - half + np.arange(len(self.ys) + 1) * self.cell_size

        rows, cols = np.nonzero(inside)
        cells = shapely.box(x_edges[cols], y_edges[rows], x_edges[cols + 1], y_edges[rows + 1])
        return shapely.union_all(cells)

    def area_m2(self, percent: float) -> float:
        """Area of the percent% contour in square meters."""
        return float(self.mask(percent).sum()) * self.cell_size ** 2


def make_grid(
    points_m: np.ndarray,
    grid: int = DEFAULT_GRID,
    extent: float = DEFAULT_EXTENT
) -> Tuple[np.ndarray, np.ndarray, float]:
    """
    Grid nodes covering the points plus `extent` times their range on each side.

    Cells are square; the longer axis gets `grid` nodes.

    Returns:
        Tuple of (xs, ys, cell_size)
    """
    if grid < 2:
        raise ValueError(f"grid must be at least 2, got {grid}")
    mins = points_m.min(axis=0)
    maxs = points_m.max(axis=0)
    ranges = maxs - mins
    # A zero-width axis borrows the other axis' range for padding
    ranges = np.where(ranges > 0, ranges, ranges.max())

    lo = mins - extent * ranges
    hi = maxs + extent * ranges
    span = hi - lo
    cell_size = float(span.max() / (grid - 1))

    n_nodes = np.maximum(np.ceil(span / cell_size - 1e-9).astype(int) + 1, 2)
    center = (lo + hi) / 2.0
    start = center - (n_nodes - 1) * cell_size / 2.0

    xs = start[0] + np.arange(n_nodes[0]) * cell_size
    ys = start[1] + np.arange(n_nodes[1]) * cell_size
    return xs, ys, cell_size


def kernel_ud(
    dataset: GroupDataset,
    bandwidth: Bandwidth = "href",
    grid: int = DEFAULT_GRID,
    extent: float = DEFAULT_EXTENT
) -> UtilizationDistribution:
    """
    Estimate the utilization distribution of one group.

    Args:
        dataset: Projected group points
        bandwidth: "href" (default), "lscv", or meters
        grid: Number of grid nodes along the longer axis
        extent: Padding around the points, as a multiple of their range

    Returns:
        UtilizationDistribution

    Raises:
        InsufficientDataError: fewer than 5 points or all points identical
    """
    points_m = _check_points(dataset.points_m)
    h, mode = resolve_bandwidth(points_m, bandwidth)
    xs, ys, cell_size = make_grid(points_m, grid, extent)

    gx, gy = np.meshgrid(xs, ys)
    nodes = np.column_stack([gx.ravel(), gy.ravel()])

    density = np.zeros(len(nodes))
    for start in range(0, len(points_m), _CHUNK):
        block = points_m[start:start + _CHUNK]
        density += np.exp(-cdist(nodes, block, 'sqeuclidean') / (2 * h * h)).sum(axis=1)
    density /= 2 * np.pi * len(points_m) * h * h

    logger.debug(f"UD for '{dataset.group_id}': h={h:.1f}m ({mode}), "
                 f"grid {len(xs)}x{len(ys)}, cell {cell_size:.1f}m")

    return UtilizationDistribution(
        xs=xs,
        ys=ys,
        density=density.reshape(len(ys), len(xs)),
        h=h,
        cell_size=cell_size,
        n_points=len(points_m),
        bandwidth_mode=mode
    )


def kde(
    dataset: GroupDataset,
    bandwidth: Bandwidth = "href",
    percent: float = 95.0,
    unit: Union[str, AreaUnit] = AreaUnit.KM2,
    grid: int = DEFAULT_GRID,
    extent: float = DEFAULT_EXTENT
) -> HomeRange:
    """
    Kernel density home range of one group at a volume contour.

    Returns:
        HomeRange whose polygon is the percent% contour in UTM meters
    """
    unit = AreaUnit.parse(unit)
    ud = kernel_ud(dataset, bandwidth, grid, extent)
    polygon = ud.contour(percent)

    result = HomeRange(
        group_id=dataset.group_id,
        method="kde",
        percent=float(percent),
        polygon=polygon,
        area=unit.from_m2(polygon.area),
        unit=unit,
        n_points=ud.n_points,
        params={"h": round(ud.h, 3), "bandwidth": ud.bandwidth_mode, "grid": grid, "extent": extent}
    )
    logger.info(f"KDE {percent:g}% for '{dataset.group_id}': "
                f"{result.area:.4f} {unit.value} (h={ud.h:.1f}m)")
    return result


def kde_grouped(
    datasets: Iterable[GroupDataset],
    bandwidth: Bandwidth = "href",
    percent: float = 95.0,
    unit: Union[str, AreaUnit] = AreaUnit.KM2,
    grid: int = DEFAULT_GRID,
    extent: float = DEFAULT_EXTENT
) -> List[HomeRange]:
    """One KDE contour per group id, in input order."""
    return [kde(d, bandwidth, percent, unit, grid, extent) for d in datasets]


def kernel_area(
    dataset: GroupDataset,
    percents: Iterable[float] = DEFAULT_KDE_PERCENTS,
    bandwidth: Bandwidth = "href",
    unit: Union[str, AreaUnit] = AreaUnit.KM2,
    grid: int = DEFAULT_GRID,
    extent: float = DEFAULT_EXTENT
) -> pd.DataFrame:
    """
    Contour area as a function of the volume percentage (single UD fit).

    Returns:
        DataFrame with columns percent, area
    """
    unit = AreaUnit.parse(unit)
    ud = kernel_ud(dataset, bandwidth, grid, extent)
    rows = [
        {"percent": float(p), "area": unit.from_m2(ud.area_m2(p))}
        for p in percents
    ]
    df = pd.DataFrame(rows, columns=["percent", "area"])
    df.attrs["unit"] = unit.value
    df.attrs["group_id"] = dataset.group_id
    df.attrs["h"] = ud.h
    return df
