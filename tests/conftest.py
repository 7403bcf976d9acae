"""
Shared pytest fixtures for home-range tests.

Provides synthetic projected datasets and a GPX writer.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from homerange.coords import CoordinateTransformer
from homerange.io import GroupDataset

# Easting/northing inside UTM Zone 36N (central meridian 33E)
ORIGIN_X = 500000.0
ORIGIN_Y = 100000.0


# ============== Helpers ==============

def _gpx_document(lons, lats, times) -> str:
    points = "\n".join(
        f'      <trkpt lat="{lat:.8f}" lon="{lon:.8f}"><time>{t:%Y-%m-%dT%H:%M:%SZ}</time></trkpt>'
        for lon, lat, t in zip(lons, lats, times)
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<gpx version="1.1" creator="homerange-tests" xmlns="http://www.topografix.com/GPX/1/1">\n'
        '  <trk>\n    <name>test</name>\n    <trkseg>\n'
        f'{points}\n'
        '    </trkseg>\n  </trk>\n</gpx>\n'
    )


# ============== Fixtures ==============

@pytest.fixture(autouse=True)
def close_figures():
    """Release matplotlib figures after every test."""
    yield
    plt.close("all")


@pytest.fixture
def transformer():
    return CoordinateTransformer(utm_zone=36, hemisphere="N")


@pytest.fixture
def make_dataset(transformer):
    """Build a GroupDataset from offsets (meters) around the test origin."""
    def _make(group_id, dx, dy, timestamps=None):
        return GroupDataset.from_points(
            group_id,
            ORIGIN_X + np.asarray(dx, dtype=float),
            ORIGIN_Y + np.asarray(dy, dtype=float),
            transformer=transformer,
            timestamps=timestamps
        )
    return _make


@pytest.fixture
def grid_square(make_dataset):
    """100 points evenly spread over a 1 km x 1 km square."""
    xx, yy = np.meshgrid(np.linspace(0, 1000, 10), np.linspace(0, 1000, 10))
    return make_dataset("square", xx.ravel(), yy.ravel())


@pytest.fixture
def gaussian_blob(make_dataset):
    """300 normally distributed points (sd 500 m)."""
    rng = np.random.default_rng(42)
    pts = rng.normal(0, 500, size=(300, 2))
    return make_dataset("blob", pts[:, 0], pts[:, 1])


@pytest.fixture
def dated_blob(make_dataset):
    """90 points, one per day from 2021-01-01."""
    rng = np.random.default_rng(7)
    pts = rng.normal(0, 300, size=(90, 2))
    times = np.array(
        [np.datetime64(datetime(2021, 1, 1) + timedelta(days=i)) for i in range(90)],
        dtype='datetime64[ns]'
    )
    return make_dataset("dated", pts[:, 0], pts[:, 1], timestamps=times)


@pytest.fixture
def write_gpx(tmp_path):
    """Write a GPX track file and return its path."""
    def _write(name, lons, lats, start=datetime(2021, 1, 1), step=timedelta(hours=12)):
        times = [start + i * step for i in range(len(lons))]
        path = tmp_path / f"{name}.gpx"
        path.write_text(_gpx_document(lons, lats, times))
        return path
    return _write


@pytest.fixture
def random_walk_lonlat():
    """120 lon/lat positions of a small random walk near 33E, 0.9N."""
    def _walk(seed=0, n=120, lon0=33.0, lat0=0.9):
        rng = np.random.default_rng(seed)
        steps = rng.normal(0, 0.001, size=(n, 2))
        path = np.cumsum(steps, axis=0)
        return lon0 + path[:, 0], lat0 + path[:, 1]
    return _walk
