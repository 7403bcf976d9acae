"""
Home-range estimate container shared by the MCP and KDE estimators.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

import numpy as np
import pandas as pd
import shapely
from shapely.geometry.base import BaseGeometry

from .config import AreaUnit
from .coords import CoordinateTransformer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HomeRange:
    """A home-range polygon (UTM meters) with its area in the requested unit."""
    group_id: str
    method: str  # "mcp" or "kde"
    percent: float
    polygon: BaseGeometry  # Polygon or MultiPolygon in UTM meters
    area: float
    unit: AreaUnit
    n_points: int
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def area_m2(self) -> float:
        return float(self.polygon.area)

    def to_wgs84(self, transformer: CoordinateTransformer) -> BaseGeometry:
        """Polygon reprojected to lon/lat degrees."""
        return shapely.transform(
            self.polygon,
            lambda xy: np.column_stack(transformer.to_wgs84(xy[:, 0], xy[:, 1]))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id": self.group_id,
            "method": self.method,
            "percent": self.percent,
            "area": round(self.area, 6),
            "unit": self.unit.value,
            "n_points": self.n_points,
            "params": dict(self.params),
        }


def ranges_to_frame(ranges: List[HomeRange]) -> pd.DataFrame:
    """Tabulate estimates, one row per (group, method, percent)."""
    rows = [
        {
            "group_id": r.group_id,
            "method": r.method,
            "percent": r.percent,
            "area": r.area,
            "unit": r.unit.value,
            "n_points": r.n_points,
        }
        for r in ranges
    ]
    return pd.DataFrame(rows, columns=["group_id", "method", "percent", "area", "unit", "n_points"])
