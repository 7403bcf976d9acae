"""
Coordinate transformation utilities.

Unit Flow:
Raw GPS (lon/lat, degrees, WGS84) → UTM Zone 36N → meters (x_m, y_m)

This is the ONLY place where coordinate transformation should happen.
All estimators work in meters.
"""

import numpy as np
from typing import Tuple, Union
from dataclasses import dataclass
import logging

from pyproj import Transformer, CRS

from .errors import CRSMismatchError

logger = logging.getLogger(__name__)

WGS84_EPSG = 4326


@dataclass
class UTMCoordinates:
    """UTM coordinates in meters."""
    x_m: np.ndarray  # Easting in meters
    y_m: np.ndarray  # Northing in meters
    zone: int
    hemisphere: str

    @property
    def epsg(self) -> int:
        return utm_epsg(self.zone, self.hemisphere)

    @property
    def n_points(self) -> int:
        return len(self.x_m)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Return (x_min, x_max, y_min, y_max) in meters."""
        return (
            float(np.min(self.x_m)),
            float(np.max(self.x_m)),
            float(np.min(self.y_m)),
            float(np.max(self.y_m))
        )

    @property
    def extent_m(self) -> Tuple[float, float]:
        """Return (x_extent, y_extent) in meters."""
        x_min, x_max, y_min, y_max = self.bounds
        return (x_max - x_min, y_max - y_min)


def utm_epsg(zone: int, hemisphere: str) -> int:
    """EPSG code of a WGS84 / UTM zone."""
    if not 1 <= int(zone) <= 60:
        raise ValueError(f"UTM zone must be in 1-60, got {zone}")
    hemisphere = hemisphere.upper()
    if hemisphere not in ("N", "S"):
        raise ValueError(f"Hemisphere must be 'N' or 'S', got {hemisphere!r}")
    return (32600 if hemisphere == "N" else 32700) + int(zone)


def utm_zone_for(lon: float, lat: float) -> Tuple[int, str]:
    """
    Standard UTM zone containing a point.

    Args:
        lon: Longitude in degrees
        lat: Latitude in degrees

    Returns:
        Tuple of (zone, hemisphere)
    """
    zone = int(np.floor((float(lon) + 180.0) / 6.0)) % 60 + 1
    return zone, ("N" if lat >= 0 else "S")


def check_geographic(
    lon: np.ndarray,
    lat: np.ndarray,
    crs: Union[str, int, CRS] = WGS84_EPSG
) -> CRS:
    """
    Validate that coordinates are tagged geographic and look like degrees.

    Projected input has to be re-tagged explicitly before it can be
    projected again.

    Raises:
        CRSMismatchError: if the CRS is not geographic or values are out of range
    """
    source = CRS.from_user_input(crs)
    if not source.is_geographic:
        raise CRSMismatchError(
            f"Expected geographic coordinates, got projected CRS {source.to_string()}"
        )

    lon = np.asarray(lon, dtype=np.float64)
    lat = np.asarray(lat, dtype=np.float64)
    if lon.size and (np.nanmax(np.abs(lon)) > 180 or np.nanmax(np.abs(lat)) > 90):
        raise CRSMismatchError(
            "Coordinates tagged as degrees are outside [-180, 180] x [-90, 90]; "
            "they look already projected"
        )
    return source


class CoordinateTransformer:
    """
    Transforms coordinates between geographic (WGS84) and projected (UTM) systems.

    The UTM projection is used because:
    - Distances and areas are in meters
    - It preserves local shapes and angles
    - Zone 36N covers the study area
    """

    DEFAULT_UTM_ZONE = 36
    DEFAULT_HEMISPHERE = "N"

    def __init__(
        self,
        utm_zone: int = DEFAULT_UTM_ZONE,
        hemisphere: str = DEFAULT_HEMISPHERE
    ):
        """
        Initialize the coordinate transformer.

        Args:
            utm_zone: UTM zone number (1-60)
            hemisphere: 'N' for northern, 'S' for southern
        """
        self.utm_zone = int(utm_zone)
        self.hemisphere = hemisphere.upper()
        self.utm_epsg = utm_epsg(self.utm_zone, self.hemisphere)

        self.crs_wgs84 = CRS.from_epsg(WGS84_EPSG)
        self.crs_utm = CRS.from_epsg(self.utm_epsg)

        self._to_utm = Transformer.from_crs(
            self.crs_wgs84,
            self.crs_utm,
            always_xy=True  # lon, lat order
        )
        self._to_wgs84 = Transformer.from_crs(
            self.crs_utm,
            self.crs_wgs84,
            always_xy=True
        )
        logger.debug(f"UTM Zone {self.utm_zone}{self.hemisphere} (EPSG:{self.utm_epsg})")

    def to_utm(
        self,
        lon: Union[float, np.ndarray],
        lat: Union[float, np.ndarray],
        crs: Union[str, int, CRS] = WGS84_EPSG
    ) -> UTMCoordinates:
        """
        Convert geographic coordinates to UTM.

        Args:
            lon: Longitude(s) in degrees
            lat: Latitude(s) in degrees
            crs: CRS the input is tagged with; must be geographic

        Returns:
            UTMCoordinates with x_m, y_m in meters (same count as input)
        """
        lon = np.atleast_1d(np.asarray(lon, dtype=np.float64))
        lat = np.atleast_1d(np.asarray(lat, dtype=np.float64))
        if lon.shape != lat.shape:
            raise ValueError(f"lon/lat shape mismatch: {lon.shape} vs {lat.shape}")

        source = check_geographic(lon, lat, crs)
        if source == self.crs_wgs84:
            transformer = self._to_utm
        else:
            transformer = Transformer.from_crs(source, self.crs_utm, always_xy=True)

        x_m, y_m = transformer.transform(lon, lat)

        return UTMCoordinates(
            x_m=np.asarray(x_m, dtype=np.float64),
            y_m=np.asarray(y_m, dtype=np.float64),
            zone=self.utm_zone,
            hemisphere=self.hemisphere
        )

    def to_wgs84(
        self,
        x: Union[float, np.ndarray],
        y: Union[float, np.ndarray]
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Convert UTM coordinates to geographic.

        Args:
            x: Easting(s) in meters
            y: Northing(s) in meters

        Returns:
            Tuple of (longitude, latitude) in degrees
        """
        lon, lat = self._to_wgs84.transform(
            np.asarray(x, dtype=np.float64),
            np.asarray(y, dtype=np.float64)
        )
        return np.asarray(lon), np.asarray(lat)

    @classmethod
    def for_points(cls, lon: np.ndarray, lat: np.ndarray) -> "CoordinateTransformer":
        """Create a transformer for the UTM zone of the points' mean position."""
        zone, hemisphere = utm_zone_for(np.nanmean(lon), np.nanmean(lat))
        return cls(utm_zone=zone, hemisphere=hemisphere)


def project_to_utm(
    lon: np.ndarray,
    lat: np.ndarray,
    zone: int = CoordinateTransformer.DEFAULT_UTM_ZONE,
    hemisphere: str = CoordinateTransformer.DEFAULT_HEMISPHERE
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convenience function to project GPS to UTM meters.

    Returns:
        Tuple of (x_meters, y_meters)
    """
    utm = CoordinateTransformer(zone, hemisphere).to_utm(lon, lat)
    return utm.x_m, utm.y_m
