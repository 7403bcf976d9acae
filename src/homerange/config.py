"""
Configuration and constants for home-range analysis.

Unit Model:
- Raw GPS (lon/lat, WGS84) → UTM Zone 36N (meters) → estimators → areas
- Areas are computed in square meters and reported in the chosen AreaUnit
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union
import json
from pathlib import Path


class AreaUnit(Enum):
    """
    Output area units.

    M2: square meters
    KM2 (default): square kilometers
    HA: hectares
    """
    M2 = "m2"
    KM2 = "km2"
    HA = "ha"

    @property
    def factor(self) -> float:
        """Square meters per unit."""
        return _SQ_METERS_PER_UNIT[self]

    def from_m2(self, area_m2: float) -> float:
        """Convert an area in square meters to this unit."""
        return float(area_m2) / self.factor

    @classmethod
    def parse(cls, value: Union[str, "AreaUnit"]) -> "AreaUnit":
        """Accept an AreaUnit or its string value ("m2", "km2", "ha")."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(u.value for u in cls)
            raise ValueError(f"Unknown area unit {value!r} (expected one of: {valid})")


_SQ_METERS_PER_UNIT = {
    AreaUnit.M2: 1.0,
    AreaUnit.KM2: 1_000_000.0,
    AreaUnit.HA: 10_000.0,
}


@dataclass
class Config:
    """
    Global configuration for a home-range run.

    Every field can be overridden from the command line.
    """

    # Projection (Zone 36N covers the study area)
    utm_zone: int = 36
    utm_hemisphere: str = "N"

    # Track loading
    layer: str = "track_points"

    # Home-range estimators
    mcp_percent: float = 95.0
    kde_percent: float = 95.0
    bandwidth: Union[str, float] = "href"
    kde_grid: int = 60
    kde_extent: float = 1.0
    area_unit: AreaUnit = AreaUnit.KM2

    # Fractal analysis
    fractal_lags: Union[str, int] = "auto"
    window_thresholds: List[str] = field(default_factory=list)  # ISO dates
    window_labels: List[str] = field(default_factory=list)  # empty: early/mid/late or window_N

    # Basemap
    basemap: bool = True
    basemap_source: str = "OpenStreetMap.Mapnik"
    basemap_padding: float = 0.01  # degrees
    basemap_retries: int = 2

    output_dir: Path = field(default_factory=lambda: Path("outputs"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "utm_zone": self.utm_zone,
            "utm_hemisphere": self.utm_hemisphere,
            "layer": self.layer,
            "mcp_percent": self.mcp_percent,
            "kde_percent": self.kde_percent,
            "bandwidth": self.bandwidth,
            "kde_grid": self.kde_grid,
            "kde_extent": self.kde_extent,
            "area_unit": self.area_unit.value,
            "fractal_lags": self.fractal_lags,
            "window_thresholds": list(self.window_thresholds),
            "window_labels": list(self.window_labels),
            "basemap": self.basemap,
            "basemap_source": self.basemap_source,
            "basemap_padding": self.basemap_padding,
            "basemap_retries": self.basemap_retries,
            "output_dir": str(self.output_dir),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        data = dict(data)
        if "area_unit" in data:
            data["area_unit"] = AreaUnit.parse(data["area_unit"])
        if "output_dir" in data:
            data["output_dir"] = Path(data["output_dir"])
        return cls(**data)

    @classmethod
    def from_json(cls, path: Path) -> "Config":
        """Load config from JSON file."""
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def save(self, path: Path) -> None:
        """Save config to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


# Global default config
DEFAULT_CONFIG = Config()
