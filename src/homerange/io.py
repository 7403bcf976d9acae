"""
Data I/O utilities.

Handles loading raw GPS tracks and projecting them to UTM.
Track points are in canonical form: timestamp, lon, lat (WGS84 degrees).
"""

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple, Union
from dataclasses import dataclass, field
import numpy as np
import pandas as pd
import geopandas as gpd

from .coords import CoordinateTransformer, WGS84_EPSG
from .errors import InsufficientDataError, LayerNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_LAYER = "track_points"
TABULAR_SUFFIXES = (".csv", ".parquet")

LON_COLUMNS = ['location-long', 'longitude', 'lon', 'x']
LAT_COLUMNS = ['location-lat', 'latitude', 'lat', 'y']
TIME_COLUMNS = ['time', 'timestamp', 'datetime', 'date']


@dataclass(frozen=True)
class TrackPoints:
    """
    Point features of one track file in geographic coordinates.

    Arrays are never modified in place; subsets return new objects.
    """
    group_id: str
    timestamps: np.ndarray  # datetime64[ns], NaT where missing
    lons: np.ndarray
    lats: np.ndarray
    crs: str = f"EPSG:{WGS84_EPSG}"
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def n_points(self) -> int:
        return len(self.lons)

    def project(self, transformer: CoordinateTransformer) -> "GroupDataset":
        """Project to UTM meters with the given transformer."""
        return project_tracks(self, transformer)


@dataclass(frozen=True)
class GroupDataset:
    """
    Projected points of one study group.

    All coordinates are in meters (UTM projection); lon/lat are kept for mapping.
    """
    group_id: str
    x_m: np.ndarray  # Easting in meters
    y_m: np.ndarray  # Northing in meters
    timestamps: np.ndarray
    lons: np.ndarray
    lats: np.ndarray
    utm_zone: int = CoordinateTransformer.DEFAULT_UTM_ZONE
    utm_hemisphere: str = CoordinateTransformer.DEFAULT_HEMISPHERE

    @property
    def n_points(self) -> int:
        return len(self.x_m)

    @property
    def points_m(self) -> np.ndarray:
        """Return Nx2 array of points in meters."""
        return np.column_stack([self.x_m, self.y_m])

    @property
    def bounds_m(self) -> Tuple[float, float, float, float]:
        """Return (x_min, x_max, y_min, y_max) in meters."""
        if self.n_points == 0:
            return (0.0, 0.0, 0.0, 0.0)
        return (
            float(np.min(self.x_m)), float(np.max(self.x_m)),
            float(np.min(self.y_m)), float(np.max(self.y_m))
        )

    def subset(self, mask: np.ndarray) -> "GroupDataset":
        """New dataset holding the points selected by a boolean mask or index array."""
        return GroupDataset(
            group_id=self.group_id,
            x_m=self.x_m[mask],
            y_m=self.y_m[mask],
            timestamps=self.timestamps[mask],
            lons=self.lons[mask],
            lats=self.lats[mask],
            utm_zone=self.utm_zone,
            utm_hemisphere=self.utm_hemisphere
        )

    @classmethod
    def from_points(
        cls,
        group_id: str,
        x_m: np.ndarray,
        y_m: np.ndarray,
        transformer: Optional[CoordinateTransformer] = None,
        timestamps: Optional[np.ndarray] = None
    ) -> "GroupDataset":
        """Build a dataset from projected points (lon/lat recovered by inverse transform)."""
        transformer = transformer or CoordinateTransformer()
        x_m = np.asarray(x_m, dtype=np.float64)
        y_m = np.asarray(y_m, dtype=np.float64)
        lons, lats = transformer.to_wgs84(x_m, y_m)
        if timestamps is None:
            timestamps = np.full(len(x_m), np.datetime64('NaT'), dtype='datetime64[ns]')
        return cls(
            group_id=group_id,
            x_m=x_m,
            y_m=y_m,
            timestamps=np.asarray(timestamps, dtype='datetime64[ns]'),
            lons=np.atleast_1d(lons),
            lats=np.atleast_1d(lats),
            utm_zone=transformer.utm_zone,
            utm_hemisphere=transformer.hemisphere
        )


def _find_column(columns, candidates: List[str]) -> Optional[str]:
    """Find first matching column name from candidates (case-insensitive)."""
    lowered = {str(c).lower(): c for c in columns}
    for c in candidates:
        if c in lowered:
            return lowered[c]
    return None


def _to_datetime64(values) -> np.ndarray:
    """Parse timestamps to naive UTC datetime64[ns]; unparseable values become NaT."""
    parsed = pd.to_datetime(pd.Series(values), utc=True, errors="coerce")
    return parsed.dt.tz_localize(None).to_numpy(dtype='datetime64[ns]')


def list_layers(path: Union[str, Path]) -> List[str]:
    """Names of the layers in a vector file."""
    return [str(name) for name in gpd.list_layers(path)["name"]]


def _read_vector(path: Path, layer: str) -> gpd.GeoDataFrame:
    layers = list_layers(path)
    if layer not in layers:
        raise LayerNotFoundError(
            f"Layer {layer!r} not found in {path} (available: {', '.join(layers) or 'none'})"
        )
    gdf = gpd.read_file(path, layer=layer)

    if gdf.crs is not None and not gdf.crs.is_geographic:
        # The file itself declares the projection, so reprojecting is explicit
        logger.info(f"Reprojecting layer {layer!r} from {gdf.crs.to_string()} to EPSG:{WGS84_EPSG}")
        gdf = gdf.to_crs(epsg=WGS84_EPSG)
    return gdf


def _read_tabular(path: Path) -> gpd.GeoDataFrame:
    df = pd.read_parquet(path) if path.suffix == '.parquet' else pd.read_csv(path)

    lon_col = _find_column(df.columns, LON_COLUMNS)
    lat_col = _find_column(df.columns, LAT_COLUMNS)
    if not lon_col or not lat_col:
        raise ValueError(f"Could not find lat/lon columns in {df.columns.tolist()}")

    return gpd.GeoDataFrame(
        df,
        geometry=gpd.points_from_xy(df[lon_col], df[lat_col]),
        crs=f"EPSG:{WGS84_EPSG}"
    )


def load_tracks(
    path: Union[str, Path],
    layer: str = DEFAULT_LAYER,
    group_id: Optional[str] = None,
    time_field: Optional[str] = None
) -> TrackPoints:
    """
    Load track points from a GPX (or other vector) file, CSV or parquet.

    Args:
        path: Path to data file
        layer: Layer to read from vector files (GPX: "track_points" or "waypoints")
        group_id: Group label (defaults to filename stem)
        time_field: Timestamp column (default: first of time/timestamp/datetime/date)

    Returns:
        TrackPoints in file order

    Raises:
        LayerNotFoundError: if the layer does not exist
        InsufficientDataError: if the layer holds no point geometries
    """
    path = Path(path)
    group_id = group_id or path.stem

    if path.suffix.lower() in TABULAR_SUFFIXES:
        gdf = _read_tabular(path)
    else:
        gdf = _read_vector(path, layer)

    n_raw = len(gdf)
    gdf = gdf[gdf.geometry.notna()]
    gdf = gdf[~gdf.geometry.is_empty]
    gdf = gdf[gdf.geom_type == "Point"]

    if len(gdf) == 0:
        raise InsufficientDataError(f"No point geometries in {path} (layer {layer!r})")
    if len(gdf) < n_raw:
        logger.warning(f"Dropped {n_raw - len(gdf)} empty or non-point features from {path}")

    time_col = time_field or _find_column(gdf.columns, TIME_COLUMNS)
    if time_col is not None and time_col in gdf.columns:
        timestamps = _to_datetime64(gdf[time_col].values)
    else:
        logger.warning(f"No timestamp column in {path}; timestamps set to NaT")
        timestamps = np.full(len(gdf), np.datetime64('NaT'), dtype='datetime64[ns]')

    track = TrackPoints(
        group_id=group_id,
        timestamps=timestamps,
        lons=gdf.geometry.x.to_numpy(dtype=np.float64),
        lats=gdf.geometry.y.to_numpy(dtype=np.float64),
        crs=f"EPSG:{WGS84_EPSG}",
        metadata={"source": str(path), "layer": layer}
    )

    logger.info(f"Loaded {track.n_points} points for group '{group_id}' from {path}")
    return track


def load_groups(
    sources: Mapping[str, Union[str, Path]],
    layer: str = DEFAULT_LAYER
) -> Dict[str, TrackPoints]:
    """Load one track file per group label, preserving the mapping order."""
    return {
        group_id: load_tracks(path, layer=layer, group_id=group_id)
        for group_id, path in sources.items()
    }


def project_tracks(
    track: TrackPoints,
    transformer: Optional[CoordinateTransformer] = None
) -> GroupDataset:
    """
    Project a track's points to UTM meters.

    Args:
        track: TrackPoints in geographic coordinates
        transformer: CoordinateTransformer instance (default: Zone 36N)

    Returns:
        GroupDataset with the same point count and order
    """
    transformer = transformer or CoordinateTransformer()
    utm = transformer.to_utm(track.lons, track.lats, crs=track.crs)

    return GroupDataset(
        group_id=track.group_id,
        x_m=utm.x_m,
        y_m=utm.y_m,
        timestamps=track.timestamps,
        lons=track.lons,
        lats=track.lats,
        utm_zone=utm.zone,
        utm_hemisphere=utm.hemisphere
    )
