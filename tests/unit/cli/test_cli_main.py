"""Tests for the tiler CLI."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from tiler.cli.main import app
from tiler.raster.codec import ImageFormat, decode, encode

runner = CliRunner()


def _write_image(path: Path, make_raster, width: int, height: int) -> None:
    path.write_bytes(encode(make_raster(width, height), ImageFormat.PNG))


# =============================================================================
# Version Command
# =============================================================================


class TestVersionCommand:
    """Tests for `tiler version`."""

    def test_version_outputs_version_string(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "tiler" in result.stdout.lower()

    def test_version_json_output(self) -> None:
        result = runner.invoke(app, ["version", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert "version" in data


# =============================================================================
# Tiles Command
# =============================================================================


class TestTilesCommand:
    """Tests for `tiler tiles`."""

    def test_writes_named_tiles(self, tmp_path: Path, make_raster) -> None:
        source = tmp_path / "in.png"
        _write_image(source, make_raster, 100, 70)
        out = tmp_path / "tiles"

        result = runner.invoke(app, ["tiles", str(source), str(out), "--tile-size", "64"])

        assert result.exit_code == 0
        names = sorted(p.name for p in out.iterdir())
        assert names == [
            "tile_r0_c0.png",
            "tile_r0_c1.png",
            "tile_r1_c0.png",
            "tile_r1_c1.png",
        ]
        assert decode((out / "tile_r1_c1.png").read_bytes()).size == (36, 6)

    def test_json_output_and_format(self, tmp_path: Path, make_raster) -> None:
        source = tmp_path / "in.png"
        _write_image(source, make_raster, 40, 40)
        out = tmp_path / "tiles"

        result = runner.invoke(
            app,
            ["tiles", str(source), str(out), "-t", "32", "--format", "bmp", "--json"],
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert (data["rows"], data["cols"]) == (2, 2)
        assert data["format"] == "bmp"
        assert "tile_r0_c0.bmp" in data["files"]

    def test_unknown_format(self, tmp_path: Path, make_raster) -> None:
        source = tmp_path / "in.png"
        _write_image(source, make_raster, 10, 10)

        result = runner.invoke(app, ["tiles", str(source), str(tmp_path / "o"), "-f", "gif"])

        assert result.exit_code != 0

    def test_undecodable_input(self, tmp_path: Path) -> None:
        source = tmp_path / "in.png"
        source.write_bytes(b"garbage")

        result = runner.invoke(app, ["tiles", str(source), str(tmp_path / "o")])

        assert result.exit_code == 1

    def test_missing_input(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["tiles", str(tmp_path / "nope.png"), str(tmp_path)])
        assert result.exit_code != 0


# =============================================================================
# Pyramid Command
# =============================================================================


class TestPyramidCommand:
    """Tests for `tiler pyramid`."""

    def test_writes_levels(self, tmp_path: Path, make_raster) -> None:
        source = tmp_path / "in.png"
        _write_image(source, make_raster, 64, 48)
        out = tmp_path / "levels"

        result = runner.invoke(
            app, ["pyramid", str(source), str(out), "--min-level-size", "10", "--json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [(lvl["width"], lvl["height"]) for lvl in data["levels"]] == [
            (64, 48),
            (32, 24),
            (16, 12),
        ]
        assert decode((out / "level_2.png").read_bytes()).size == (16, 12)

    def test_table_output(self, tmp_path: Path, make_raster) -> None:
        source = tmp_path / "in.png"
        _write_image(source, make_raster, 20, 20)

        result = runner.invoke(app, ["pyramid", str(source), str(tmp_path / "o")])

        assert result.exit_code == 0
        assert "Level" in result.stdout
        assert "level_0.png" in result.stdout


def test_no_command_shows_help() -> None:
    result = runner.invoke(app, [])
    assert result.exit_code == 0
    assert "tiles" in result.stdout
