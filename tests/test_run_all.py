"""
End-to-end tests for the orchestrator (no network: basemap disabled).
"""

import argparse
import json
from pathlib import Path

import pandas as pd
import pytest

from homerange.config import AreaUnit, Config
from homerange.run_all import build_parser, config_from_args, main, parse_group, run_all


# ============== Fixtures ==============

@pytest.fixture
def two_groups(write_gpx, random_walk_lonlat):
    """Two 120-point GPX tracks (60 days at 12 h spacing)."""
    west = write_gpx("west", *random_walk_lonlat(seed=1, lon0=32.9))
    east = write_gpx("eastcent", *random_walk_lonlat(seed=2, lon0=33.1))
    return {"west": west, "eastcent": east}


# ============== Pipeline Tests ==============

class TestRunAll:
    """Full pipeline on synthetic tracks."""

    def test_whole_track(self, two_groups, tmp_path):
        config = Config(basemap=False, area_unit=AreaUnit.HA)
        summary = run_all(two_groups, config, output_dir=tmp_path / "out")

        assert summary["errors"] == []
        assert [g["group_id"] for g in summary["groups"]] == ["west", "eastcent"]
        assert [g["n_points"] for g in summary["groups"]] == [120, 120]
        assert {(r["group_id"], r["method"]) for r in summary["ranges"]} == {
            ("west", "mcp"), ("west", "kde"), ("eastcent", "mcp"), ("eastcent", "kde")
        }
        assert all(r["unit"] == "ha" for r in summary["ranges"])
        assert [(f["group_id"], f["window"]) for f in summary["fractal"]] == [
            ("west", "all"), ("eastcent", "all")
        ]

        out = tmp_path / "out"
        assert (out / "mcp_map.png").exists()
        assert (out / "kde_map.png").exists()
        assert (out / "fractal_west_all.png").exists()
        table = pd.read_csv(out / "home_ranges.csv")
        assert len(table) == 4

    def test_time_windows(self, two_groups, tmp_path):
        config = Config(basemap=False, window_thresholds=["2021-01-20", "2021-02-10"])
        summary = run_all(two_groups, config, output_dir=tmp_path)

        assert summary["errors"] == []
        windows = [f["window"] for f in summary["fractal"] if f["group_id"] == "west"]
        assert windows == ["early", "mid", "late"]
        assert sum(f["n_samples"] for f in summary["fractal"] if f["group_id"] == "west") == 120
        assert (tmp_path / "fractal_eastcent_late.png").exists()

    def test_single_threshold_without_labels(self, two_groups, tmp_path):
        args = build_parser().parse_args(["--windows", "2021-01-31", "--no-basemap"])
        summary = run_all(two_groups, config_from_args(args), output_dir=tmp_path)

        assert summary["errors"] == []
        windows = [f["window"] for f in summary["fractal"] if f["group_id"] == "west"]
        assert windows == ["window_0", "window_1"]
        assert (tmp_path / "fractal_west_window_1.png").exists()

    def test_short_window_recorded_as_error(self, two_groups, tmp_path):
        """A window with too few samples fails alone; the rest still run."""
        config = Config(basemap=False, window_thresholds=["2021-01-03"], window_labels=["first", "rest"])
        summary = run_all(two_groups, config, output_dir=tmp_path)

        steps = {(e["group"], e["step"]) for e in summary["errors"]}
        assert steps == {("west", "fractal:first"), ("eastcent", "fractal:first")}
        assert len(summary["fractal"]) == 2
        assert len(summary["ranges"]) == 4

    def test_missing_file_recorded(self, two_groups, tmp_path):
        sources = dict(two_groups, ghost=tmp_path / "ghost.gpx")
        summary = run_all(sources, Config(basemap=False), output_dir=tmp_path)

        assert [e["group"] for e in summary["errors"]] == ["ghost"]
        assert len(summary["groups"]) == 2

    def test_summary_is_json(self, two_groups, tmp_path):
        summary = run_all(two_groups, Config(basemap=False), output_dir=tmp_path)
        assert json.loads(json.dumps(summary))["config"]["basemap"] is False


# ============== CLI Tests ==============

class TestCLI:
    """Argument parsing and exit status."""

    def test_parse_group(self):
        assert parse_group("west=data/w.gpx") == ("west", Path("data/w.gpx"))
        assert parse_group("data/eastcent.gpx") == ("eastcent", Path("data/eastcent.gpx"))

    def test_parse_group_empty_name(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_group("=data/w.gpx")

    def test_flags_override_config_file(self, tmp_path):
        path = tmp_path / "config.json"
        Config(kde_percent=50.0, bandwidth="lscv").save(path)

        args = build_parser().parse_args([
            "--config", str(path), "--bandwidth", "200", "--unit", "m2",
            "--windows", "2021-02-01", "2021-03-01", "--no-basemap"
        ])
        config = config_from_args(args)

        assert config.kde_percent == 50.0
        assert config.bandwidth == "200"
        assert config.area_unit is AreaUnit.M2
        assert config.window_thresholds == ["2021-02-01", "2021-03-01"]
        assert config.basemap is False

    def test_main_writes_summary(self, two_groups, tmp_path):
        out = tmp_path / "cli"
        main([
            "--group", f"west={two_groups['west']}",
            "--data", str(two_groups["eastcent"]),
            "--no-basemap", "--output", str(out)
        ])

        summary = json.loads((out / "run_summary.json").read_text())
        assert [g["group_id"] for g in summary["groups"]] == ["west", "eastcent"]
        assert summary["errors"] == []

    def test_main_fails_on_missing_file(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main(["--group", f"ghost={tmp_path / 'ghost.gpx'}", "--no-basemap",
                  "--output", str(tmp_path)])
        assert exc.value.code == 1
        assert (tmp_path / "run_summary.json").exists()

    def test_main_requires_groups(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main(["--output", str(tmp_path)])
        assert exc.value.code == 1
