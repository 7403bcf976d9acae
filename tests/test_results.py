"""
Tests for home-range result containers.
"""

import numpy as np
import pytest

from homerange.kde import kde
from homerange.mcp import mcp
from homerange.results import ranges_to_frame


class TestToWGS84:
    """Reprojecting polygons to lon/lat."""

    @pytest.mark.filterwarnings("error::DeprecationWarning")
    def test_vertices_match_transformer(self, grid_square, transformer):
        home_range = mcp(grid_square, 100)

        outline = home_range.to_wgs84(transformer)

        utm = np.asarray(home_range.polygon.exterior.coords)
        lon, lat = transformer.to_wgs84(utm[:, 0], utm[:, 1])
        np.testing.assert_allclose(np.asarray(outline.exterior.coords), np.column_stack([lon, lat]))

    @pytest.mark.filterwarnings("error::DeprecationWarning")
    def test_multipart_contour(self, gaussian_blob, transformer):
        home_range = kde(gaussian_blob, percent=50)

        outline = home_range.to_wgs84(transformer)

        assert outline.geom_type == home_range.polygon.geom_type
        minx, miny, maxx, maxy = outline.bounds
        assert 32.9 < minx < maxx < 33.1
        assert 0.8 < miny < maxy < 1.0

    def test_original_untouched(self, grid_square, transformer):
        home_range = mcp(grid_square, 100)
        before = home_range.polygon.bounds
        home_range.to_wgs84(transformer)
        assert home_range.polygon.bounds == before


def test_ranges_to_frame(grid_square, gaussian_blob):
    df = ranges_to_frame([mcp(grid_square, 95), mcp(gaussian_blob, 95, "ha")])
    assert list(df.columns) == ["group_id", "method", "percent", "area", "unit", "n_points"]
    assert list(df["unit"]) == ["km2", "ha"]
