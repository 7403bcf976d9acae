"""
Tests for map rendering.

Tile fetching is replaced with stubs so no network access is needed.
"""

import logging

import numpy as np
import pytest
import requests

import homerange.mapping as mapping
from homerange.errors import BasemapUnavailableError
from homerange.mapping import (
    fetch_basemap,
    group_colors,
    kde_map,
    mcp_map,
    padded_bounds,
    plot_home_ranges,
)
from homerange.mcp import mcp


# ============== Fixtures ==============

@pytest.fixture
def offline(monkeypatch):
    """Every tile request fails with a connection error."""
    calls = []

    def _fail(*args, **kwargs):
        calls.append(kwargs)
        raise requests.ConnectionError("no route to tile server")

    monkeypatch.setattr(mapping.ctx, "bounds2img", _fail)
    return calls


@pytest.fixture
def fake_tiles(monkeypatch):
    """Tile requests return a blank image covering the requested box."""
    calls = []

    def _bounds2img(w, s, e, n, **kwargs):
        calls.append((w, s, e, n, kwargs))
        return np.zeros((256, 256, 3), dtype=np.uint8), (w, e, s, n)

    def _warp(img, extent, t_crs=None):
        return img, extent

    monkeypatch.setattr(mapping.ctx, "bounds2img", _bounds2img)
    monkeypatch.setattr(mapping.ctx, "warp_tiles", _warp)
    return calls


# ============== Helper Tests ==============

class TestHelpers:
    """Colors and bounds."""

    def test_colors_stable_across_order(self):
        a = group_colors(["west", "eastcent", "west"])
        b = group_colors(["eastcent", "west"])
        assert a == b
        assert a["west"] != a["eastcent"]

    def test_padded_bounds(self):
        w, s, e, n = padded_bounds([33.0, 33.2], [0.5, 0.9], padding=0.01)
        assert (w, s, e, n) == pytest.approx((32.99, 0.49, 33.21, 0.91))

    def test_padded_bounds_empty(self):
        with pytest.raises(ValueError):
            padded_bounds([], [])


# ============== Basemap Tests ==============

class TestBasemap:
    """Tile fetching through contextily."""

    def test_failure_raises_domain_error(self, offline):
        with pytest.raises(BasemapUnavailableError):
            fetch_basemap((33.0, 0.5, 33.2, 0.9))

    def test_request_arguments(self, fake_tiles):
        img, extent = fetch_basemap((33.0, 0.5, 33.2, 0.9), max_retries=5)
        assert img.shape == (256, 256, 3)
        w, s, e, n, kwargs = fake_tiles[0]
        assert (w, s, e, n) == (33.0, 0.5, 33.2, 0.9)
        assert kwargs["ll"] is True
        assert kwargs["max_retries"] == 5

    def test_map_survives_missing_tiles(self, grid_square, offline, caplog):
        home_range = mcp(grid_square, 95)
        with caplog.at_level(logging.WARNING, logger="homerange.mapping"):
            fig = plot_home_ranges([(grid_square, home_range)], basemap=True)
        assert "without basemap" in caplog.text
        assert len(offline) == 1
        assert len(fig.axes[0].patches) == 1
        assert not fig.axes[0].images

    def test_basemap_drawn_under_points(self, grid_square, fake_tiles):
        fig = plot_home_ranges([(grid_square, mcp(grid_square, 95))], basemap=True)
        ax = fig.axes[0]
        assert len(ax.images) == 1
        assert ax.images[0].get_zorder() < ax.collections[0].get_zorder()

    def test_no_basemap_makes_no_request(self, grid_square, offline):
        plot_home_ranges([(grid_square, None)], basemap=False)
        assert offline == []


# ============== Composition Tests ==============

class TestPlotHomeRanges:
    """Figure content."""

    def test_axes_labels_and_limits(self, grid_square):
        fig = plot_home_ranges([(grid_square, mcp(grid_square, 100))], basemap=False)
        ax = fig.axes[0]
        assert ax.get_xlabel() == "Longitude"
        assert ax.get_ylabel() == "Latitude"
        west, east = ax.get_xlim()
        assert west < grid_square.lons.min() and east > grid_square.lons.max()

    def test_one_legend_entry_per_group(self, grid_square, gaussian_blob):
        fig = plot_home_ranges(
            [(grid_square, mcp(grid_square, 95)), (gaussian_blob, mcp(gaussian_blob, 95))],
            basemap=False
        )
        labels = [t.get_text() for t in fig.axes[0].get_legend().get_texts()]
        assert labels == ["square", "blob"]
        assert len(fig.axes[0].patches) == 2

    def test_points_without_polygon(self, grid_square):
        fig = plot_home_ranges([(grid_square, None)], basemap=False)
        assert len(fig.axes[0].patches) == 0
        assert len(fig.axes[0].collections) == 1

    def test_empty_records(self):
        with pytest.raises(ValueError):
            plot_home_ranges([])


class TestMethodMaps:
    """mcp_map / kde_map wrappers."""

    def test_mcp_map(self, grid_square, gaussian_blob):
        fig, ranges = mcp_map([grid_square, gaussian_blob], percent=90, unit="ha", basemap=False)
        assert [r.group_id for r in ranges] == ["square", "blob"]
        assert all(r.unit.value == "ha" for r in ranges)
        assert fig.axes[0].get_title() == "MCP 90%"

    def test_kde_map(self, gaussian_blob):
        fig, ranges = kde_map([gaussian_blob], percent=50, basemap=False)
        assert ranges[0].method == "kde"
        assert len(fig.axes[0].patches) >= 1
        assert "KDE 50%" in fig.axes[0].get_title()
