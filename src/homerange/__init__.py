"""
Home-range and movement fractal analysis for GPS tracks.

Unit Model:
- Raw GPS (lon/lat) → UTM Zone 36N (meters) → MCP / KDE / fractal → areas in m2, km2 or ha
- Maps are drawn back in lon/lat over basemap tiles

Usage:
    homerange --group west=data/west.gpx --group eastcent=data/eastcent.gpx
"""

from .config import AreaUnit, Config
from .coords import CoordinateTransformer, UTMCoordinates, project_to_utm, utm_zone_for
from .errors import (
    BasemapUnavailableError,
    CRSMismatchError,
    HomeRangeError,
    InsufficientDataError,
    LayerNotFoundError,
)
from .io import GroupDataset, TrackPoints, load_groups, load_tracks, project_tracks
from .results import HomeRange, ranges_to_frame
from .mcp import mcp, mcp_area, mcp_grouped
from .kde import UtilizationDistribution, kde, kde_grouped, kernel_area, kernel_ud
from .fractal import FractalResult, estimate_fractal_dimension, fractal_plot
from .mapping import kde_map, mcp_map, plot_home_ranges
from .windows import filter_time_window, split_by_dates

__version__ = "1.0.0"

__all__ = [
    'AreaUnit', 'Config',
    'CoordinateTransformer', 'UTMCoordinates', 'project_to_utm', 'utm_zone_for',
    'HomeRangeError', 'LayerNotFoundError', 'CRSMismatchError',
    'InsufficientDataError', 'BasemapUnavailableError',
    'TrackPoints', 'GroupDataset', 'load_tracks', 'load_groups', 'project_tracks',
    'HomeRange', 'ranges_to_frame',
    'mcp', 'mcp_grouped', 'mcp_area',
    'UtilizationDistribution', 'kernel_ud', 'kde', 'kde_grouped', 'kernel_area',
    'FractalResult', 'estimate_fractal_dimension', 'fractal_plot',
    'plot_home_ranges', 'mcp_map', 'kde_map',
    'split_by_dates', 'filter_time_window',
]
