"""
Map rendering for home-range results.

Points and polygons are drawn in lon/lat over a basemap tile image
fetched with contextily. A failed tile fetch is not fatal: the map is
drawn without tiles and a warning is logged.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.patches import PathPatch
from matplotlib.path import Path as MplPath
import contextily as ctx
import requests
from shapely.geometry import Polygon
from shapely.geometry.polygon import orient

from .config import AreaUnit
from .coords import CoordinateTransformer
from .errors import BasemapUnavailableError
from .io import GroupDataset
from .kde import DEFAULT_EXTENT, DEFAULT_GRID, kde
from .mcp import mcp
from .results import HomeRange

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "OpenStreetMap.Mapnik"
DEFAULT_PADDING = 0.01  # degrees
POINT_ALPHA = 0.15
POLYGON_ALPHA = 0.35

Bounds = Tuple[float, float, float, float]  # west, south, east, north
Record = Tuple[GroupDataset, Optional[HomeRange]]


def group_colors(group_ids: Iterable[str]) -> Dict[str, tuple]:
    """Stable color per group id: sorted ids over the tab10 cycle."""
    cmap = plt.get_cmap("tab10")
    return {gid: cmap(i % cmap.N) for i, gid in enumerate(sorted(set(group_ids)))}


def padded_bounds(lons: np.ndarray, lats: np.ndarray, padding: float = DEFAULT_PADDING) -> Bounds:
    """Bounding box (west, south, east, north) grown by a fixed margin in degrees."""
    lons = np.asarray(lons, dtype=np.float64)
    lats = np.asarray(lats, dtype=np.float64)
    if lons.size == 0:
        raise ValueError("No coordinates to bound")
    return (
        float(np.nanmin(lons)) - padding,
        float(np.nanmin(lats)) - padding,
        float(np.nanmax(lons)) + padding,
        float(np.nanmax(lats)) + padding,
    )


def _resolve_source(source):
    if isinstance(source, str):
        return ctx.providers.query_name(source)
    return source


def fetch_basemap(
    bounds: Bounds,
    source=DEFAULT_SOURCE,
    zoom: Union[str, int] = "auto",
    max_retries: int = 2
) -> Tuple[np.ndarray, Tuple[float, float, float, float]]:
    """
    Fetch basemap tiles for a lon/lat box and warp them to EPSG:4326.

    Returns:
        Tuple of (image array, extent as (min_x, max_x, min_y, max_y) in degrees)

    Raises:
        BasemapUnavailableError: tiles could not be fetched or warped
    """
    west, south, east, north = bounds
    try:
        img, extent = ctx.bounds2img(
            west, south, east, north,
            zoom=zoom,
            source=_resolve_source(source),
            ll=True,
            max_retries=max_retries
        )
        img, extent = ctx.warp_tiles(img, extent, t_crs="EPSG:4326")
    except (requests.RequestException, OSError, ValueError) as e:
        raise BasemapUnavailableError(f"Basemap tiles unavailable: {e}") from e
    return img, extent


def _polygon_patch(polygon: Polygon, color, alpha: float) -> PathPatch:
    polygon = orient(polygon, sign=1.0)
    rings = [polygon.exterior] + list(polygon.interiors)
    path = MplPath.make_compound_path(
        *[MplPath(np.asarray(ring.coords)[:, :2], closed=True) for ring in rings]
    )
    return PathPatch(path, facecolor=color, edgecolor=color, alpha=alpha, linewidth=1.5, zorder=3)


def plot_home_ranges(
    records: Sequence[Record],
    transformer: Optional[CoordinateTransformer] = None,
    basemap: bool = True,
    source=DEFAULT_SOURCE,
    padding: float = DEFAULT_PADDING,
    zoom: Union[str, int] = "auto",
    max_retries: int = 2,
    title: Optional[str] = None,
    ax=None
):
    """
    Compose points and home-range polygons over a basemap.

    Args:
        records: (dataset, home range or None) pairs; one color per group id
        transformer: Used to take polygons back to lon/lat
                     (default: zone of the first dataset)
        basemap: Fetch and draw basemap tiles
        source: contextily provider or its dotted name
        padding: Margin around the union bounding box, in degrees

    Returns:
        matplotlib Figure
    """
    if not records:
        raise ValueError("Nothing to map")

    first = records[0][0]
    transformer = transformer or CoordinateTransformer(first.utm_zone, first.utm_hemisphere)
    colors = group_colors(dataset.group_id for dataset, _ in records)

    outlines = {}
    all_lons: List[np.ndarray] = []
    all_lats: List[np.ndarray] = []
    for dataset, home_range in records:
        all_lons.append(dataset.lons)
        all_lats.append(dataset.lats)
        if home_range is not None:
            outline = home_range.to_wgs84(transformer)
            outlines[id(home_range)] = outline
            minx, miny, maxx, maxy = outline.bounds
            all_lons.append(np.array([minx, maxx]))
            all_lats.append(np.array([miny, maxy]))

    west, south, east, north = padded_bounds(
        np.concatenate(all_lons), np.concatenate(all_lats), padding
    )

    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 8))
    else:
        fig = ax.figure

    if basemap:
        try:
            img, extent = fetch_basemap((west, south, east, north), source, zoom, max_retries)
            ax.imshow(img, extent=extent, interpolation="bilinear", zorder=0)
        except BasemapUnavailableError as e:
            logger.warning(f"{e}; drawing map without basemap")

    for dataset, home_range in records:
        color = colors[dataset.group_id]
        ax.scatter(
            dataset.lons, dataset.lats,
            s=8, color=color, alpha=POINT_ALPHA, linewidths=0,
            label=dataset.group_id, zorder=2
        )
        if home_range is None:
            continue
        outline = outlines[id(home_range)]
        for polygon in getattr(outline, "geoms", [outline]):
            if isinstance(polygon, Polygon) and not polygon.is_empty:
                ax.add_patch(_polygon_patch(polygon, color, POLYGON_ALPHA))

    ax.set_xlim(west, east)
    ax.set_ylim(south, north)
    ax.set_xlabel("Longitude")
    ax.set_ylabel("Latitude")
    if title:
        ax.set_title(title)
    ax.legend(loc="best", markerscale=2)
    fig.tight_layout()
    return fig


def mcp_map(
    datasets: Sequence[GroupDataset],
    percent: float = 95.0,
    unit: Union[str, AreaUnit] = AreaUnit.KM2,
    **map_kwargs
) -> Tuple[object, List[HomeRange]]:
    """MCP per group, drawn over a basemap. Returns (figure, home ranges)."""
    ranges = [mcp(dataset, percent, unit) for dataset in datasets]
    map_kwargs.setdefault("title", f"MCP {percent:g}%")
    fig = plot_home_ranges(list(zip(datasets, ranges)), **map_kwargs)
    return fig, ranges


def kde_map(
    datasets: Sequence[GroupDataset],
    bandwidth: Union[str, float] = "href",
    percent: float = 95.0,
    unit: Union[str, AreaUnit] = AreaUnit.KM2,
    grid: int = DEFAULT_GRID,
    extent: float = DEFAULT_EXTENT,
    **map_kwargs
) -> Tuple[object, List[HomeRange]]:
    """KDE contour per group, drawn over a basemap. Returns (figure, home ranges)."""
    ranges = [kde(dataset, bandwidth, percent, unit, grid, extent) for dataset in datasets]
    map_kwargs.setdefault("title", f"KDE {percent:g}% ({bandwidth})")
    fig = plot_home_ranges(list(zip(datasets, ranges)), **map_kwargs)
    return fig, ranges
