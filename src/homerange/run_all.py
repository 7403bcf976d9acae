#!/usr/bin/env python3
"""
Home Range Analysis - Orchestrator

Load one GPS track file per study group, estimate MCP and KDE home ranges,
map them, and estimate the fractal dimension of movement per time window.

Usage:
    homerange --group west=data/west.gpx --group eastcent=data/eastcent.gpx
    homerange --data data/west.gpx --windows 2021-03-01 2021-06-01 --no-basemap
"""

import argparse
import json
import logging
import sys
from collections import OrderedDict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from .config import AreaUnit, Config
from .coords import CoordinateTransformer
from .fractal import fractal_plot
from .io import GroupDataset, load_tracks, project_tracks
from .mapping import plot_home_ranges
from .kde import kde
from .mcp import mcp
from .results import ranges_to_frame
from .windows import split_by_dates

logger = logging.getLogger(__name__)


def _record_error(summary: dict, group: str, step: str, error: Exception) -> None:
    logger.error(f"{step} failed for '{group}': {error}")
    summary["errors"].append({"group": group, "step": step, "error": str(error)})


def _save_figure(fig, path: Path, summary: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=150)
    plt.close(fig)
    summary["figures"].append(str(path))
    logger.info(f"Saved figure: {path}")


def load_datasets(
    sources: Dict[str, Path],
    config: Config,
    summary: dict
) -> "OrderedDict[str, GroupDataset]":
    """Load and project every group; failures are recorded and skipped."""
    transformer = CoordinateTransformer(config.utm_zone, config.utm_hemisphere)
    datasets = OrderedDict()

    for group_id, path in sources.items():
        try:
            track = load_tracks(path, layer=config.layer, group_id=group_id)
            datasets[group_id] = project_tracks(track, transformer)
            summary["groups"].append({
                "group_id": group_id,
                "data_file": str(path),
                "n_points": datasets[group_id].n_points
            })
        except Exception as e:
            _record_error(summary, group_id, "load", e)

    return datasets


def run_home_ranges(
    datasets: "OrderedDict[str, GroupDataset]",
    config: Config,
    output_dir: Path,
    summary: dict
) -> list:
    """MCP and KDE per group, one map per estimator."""
    transformer = CoordinateTransformer(config.utm_zone, config.utm_hemisphere)
    estimators = {
        "mcp": lambda d: mcp(d, config.mcp_percent, config.area_unit),
        "kde": lambda d: kde(
            d, config.bandwidth, config.kde_percent, config.area_unit,
            config.kde_grid, config.kde_extent
        ),
    }

    all_ranges = []
    for method, estimate in estimators.items():
        records = []
        for group_id, dataset in datasets.items():
            try:
                home_range = estimate(dataset)
                all_ranges.append(home_range)
                summary["ranges"].append(home_range.to_dict())
            except Exception as e:
                _record_error(summary, group_id, method, e)
                home_range = None
            records.append((dataset, home_range))

        if not records:
            continue

        percent = config.mcp_percent if method == "mcp" else config.kde_percent
        try:
            fig = plot_home_ranges(
                records,
                transformer=transformer,
                basemap=config.basemap,
                source=config.basemap_source,
                padding=config.basemap_padding,
                max_retries=config.basemap_retries,
                title=f"{method.upper()} {percent:g}%"
            )
            _save_figure(fig, output_dir / f"{method}_map.png", summary)
        except Exception as e:
            _record_error(summary, "all", f"{method}_map", e)

    if all_ranges:
        table_path = output_dir / "home_ranges.csv"
        table_path.parent.mkdir(parents=True, exist_ok=True)
        ranges_to_frame(all_ranges).to_csv(table_path, index=False)
        logger.info(f"Saved home-range table: {table_path}")

    return all_ranges


def run_fractal(
    datasets: "OrderedDict[str, GroupDataset]",
    config: Config,
    output_dir: Path,
    summary: dict
) -> None:
    """Fractal dimension per group and time window."""
    for group_id, dataset in datasets.items():
        if config.window_thresholds:
            try:
                windows = split_by_dates(
                    dataset, config.window_thresholds, config.window_labels or None
                )
            except ValueError as e:
                _record_error(summary, group_id, "windows", e)
                continue
        else:
            windows = OrderedDict(all=dataset)

        for label, subset in windows.items():
            try:
                result = fractal_plot(subset.points_m, lags=config.fractal_lags,
                                      title=f"{group_id} ({label})")
            except Exception as e:
                _record_error(summary, group_id, f"fractal:{label}", e)
                continue

            summary["fractal"].append({"group_id": group_id, "window": label, **result.to_dict()})
            _save_figure(result.figure, output_dir / f"fractal_{group_id}_{label}.png", summary)


def run_all(sources: Dict[str, Path], config: Config, output_dir: Optional[Path] = None) -> dict:
    """
    Run the full pipeline on all groups.

    Args:
        sources: Group id -> track file
        config: Configuration
        output_dir: Output directory (default: config.output_dir)

    Returns:
        Summary dictionary
    """
    output_dir = Path(output_dir or config.output_dir)
    summary = {
        "timestamp": datetime.now().isoformat(),
        "config": config.to_dict(),
        "groups": [],
        "ranges": [],
        "fractal": [],
        "figures": [],
        "errors": []
    }

    datasets = load_datasets(sources, config, summary)
    if datasets:
        run_home_ranges(datasets, config, output_dir, summary)
        run_fractal(datasets, config, output_dir, summary)

    return summary


def parse_group(value: str) -> tuple:
    """Parse NAME=PATH (or a bare PATH, named after its stem)."""
    if "=" in value:
        name, path = value.split("=", 1)
        if not name:
            raise argparse.ArgumentTypeError(f"Empty group name in {value!r}")
        return name, Path(path)
    path = Path(value)
    return path.stem, path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Home range (MCP, KDE) and movement fractal analysis of GPS tracks"
    )
    parser.add_argument(
        "--group", "--data", "-g",
        dest="groups",
        type=parse_group,
        action="append",
        default=[],
        metavar="NAME=PATH",
        help="Track file for one group (repeatable); bare PATH uses the file stem"
    )
    parser.add_argument("--config", "-c", type=Path, help="JSON config file")
    parser.add_argument("--layer", help="Layer to read from GPX files (default: track_points)")
    parser.add_argument("--utm-zone", type=int, help="UTM zone (default: 36)")
    parser.add_argument("--hemisphere", choices=["N", "S"], help="UTM hemisphere")
    parser.add_argument("--mcp-percent", type=float, help="MCP inclusion percentage")
    parser.add_argument("--kde-percent", type=float, help="KDE contour percentage")
    parser.add_argument("--bandwidth", help="KDE bandwidth: href, lscv or meters")
    parser.add_argument("--grid", type=int, help="KDE grid nodes along the longer axis")
    parser.add_argument("--extent", type=float, help="KDE grid padding as a multiple of the range")
    parser.add_argument(
        "--unit", "-u",
        choices=[u.value for u in AreaUnit],
        help="Output area unit"
    )
    parser.add_argument("--lags", help="Fractal lag selection: auto or an integer")
    parser.add_argument(
        "--windows",
        nargs="+",
        metavar="DATE",
        help="Calendar-date thresholds splitting each track into time windows"
    )
    parser.add_argument("--window-labels", nargs="+", metavar="LABEL", help="Window names")
    parser.add_argument("--no-basemap", action="store_true", help="Skip basemap tiles")
    parser.add_argument("--output", "-o", type=Path, help="Output directory")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser


def config_from_args(args: argparse.Namespace) -> Config:
    """Config file values, overridden by any flags given on the command line."""
    config = Config.from_json(args.config) if args.config else Config()

    overrides = {
        "layer": args.layer,
        "utm_zone": args.utm_zone,
        "utm_hemisphere": args.hemisphere,
        "mcp_percent": args.mcp_percent,
        "kde_percent": args.kde_percent,
        "bandwidth": args.bandwidth,
        "kde_grid": args.grid,
        "kde_extent": args.extent,
        "area_unit": AreaUnit.parse(args.unit) if args.unit else None,
        "fractal_lags": args.lags,
        "window_thresholds": args.windows,
        "window_labels": args.window_labels,
        "output_dir": args.output,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    if args.no_basemap:
        config.basemap = False
    return config


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    config = config_from_args(args)
    sources = OrderedDict(args.groups)

    if not sources:
        logger.error("No track files given (use --group NAME=PATH)")
        sys.exit(1)

    logger.info(f"Processing {len(sources)} groups: {', '.join(sources)}")
    logger.info(f"Output: {config.output_dir}")

    summary = run_all(sources, config)

    summary_path = Path(config.output_dir) / "run_summary.json"
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    with open(summary_path, 'w') as f:
        json.dump(summary, f, indent=2)
    logger.info(f"Summary saved to: {summary_path}")

    for entry in summary["ranges"]:
        logger.info(f"  {entry['group_id']:>12} {entry['method'].upper()} "
                    f"{entry['percent']:g}%: {entry['area']:.4f} {entry['unit']}")
    for entry in summary["fractal"]:
        logger.info(f"  {entry['group_id']:>12} D[{entry['window']}] = {entry['dimension']:.3f}")

    n_errors = len(summary["errors"])
    logger.info(f"{'='*60}")
    logger.info(f"COMPLETE: {len(summary['ranges'])} home ranges, "
                f"{len(summary['fractal'])} fractal estimates, {n_errors} errors")
    logger.info(f"{'='*60}")

    if n_errors > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
