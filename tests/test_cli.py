from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from .documentation import documents
from .imaging import decode_jpeg, encode_png, gradient_rgb8

np = pytest.importorskip("numpy")
pytest.importorskip("PIL.Image")
pytest.importorskip("yaml")

from luma_renderer import cli  # noqa: E402  # pylint: disable=wrong-import-position
from luma_renderer.adjustments import AdjustmentParameters  # noqa: E402  # pylint: disable=wrong-import-position
from luma_renderer.geometry import NormalizedRect  # noqa: E402  # pylint: disable=wrong-import-position


@pytest.fixture
def library(tmp_path: Path) -> Path:
    root = tmp_path / "library"
    root.mkdir()
    (root / "wide.png").write_bytes(encode_png(gradient_rgb8(40, 20)))
    (root / "tall.png").write_bytes(encode_png(gradient_rgb8(20, 40)))
    return root


def test_parse_preview_arguments(library: Path):
    args = cli.parse_args(
        [
            "preview",
            str(library),
            "wide.png",
            "--max-side",
            "16",
            "--set",
            "exposure=0.5",
            "--set",
            "color-noise=0.2",
            "--rect",
            "0,0,0.5,1",
        ]
    )

    assert args.command == "preview"
    assert args.max_side == 16
    assert args.overrides == [("exposure", 0.5), ("color_noise", 0.2)]
    assert args.rect == NormalizedRect(0.0, 0.0, 0.5, 1.0)
    assert args.log_level == "INFO"


@pytest.mark.parametrize(
    "extra",
    [
        ["--set", "sparkle=1"],
        ["--set", "exposure"],
        ["--set", "exposure=bright"],
        ["--rect", "0,0,1"],
        ["--max-side", "0"],
    ],
)
def test_parse_rejects_malformed_options(library: Path, extra):
    argv = ["preview", str(library), "wide.png", "--max-side", "16", *extra]

    with pytest.raises(SystemExit):
        cli.parse_args(argv)


def test_max_side_is_required_for_previews(library: Path):
    with pytest.raises(SystemExit):
        cli.parse_args(["preview", str(library), "wide.png"])


@documents("Configuration files provide defaults that the command line can override")
def test_config_file_supplies_defaults(tmp_path: Path, library: Path):
    config = tmp_path / "render.yaml"
    config.write_text("max-side: 24\nquality: 0.6\nset:\n  - vibrance=0.4\nlog_level: DEBUG\n")

    args = cli.parse_args(["preview", str(library), "wide.png", "--config", str(config)])

    assert args.max_side == 24
    assert args.quality == pytest.approx(0.6)
    assert args.overrides == [("vibrance", 0.4)]
    assert args.log_level == "DEBUG"

    overridden = cli.parse_args(
        ["preview", str(library), "wide.png", "--config", str(config), "--max-side", "8"]
    )
    assert overridden.max_side == 8


def test_config_file_rejects_unknown_keys(tmp_path: Path, library: Path):
    config = tmp_path / "render.json"
    config.write_text(json.dumps({"sparkle": True}))

    with pytest.raises(SystemExit):
        cli.parse_args(["export", str(library), "wide.png", "--config", str(config)])


def test_config_file_coerces_booleans(tmp_path: Path, library: Path):
    config = tmp_path / "render.json"
    config.write_text(json.dumps({"no_progress": "yes"}))

    args = cli.parse_args(["export", str(library), "wide.png", "--config", str(config)])

    assert args.no_progress is True


def test_build_parameters_layers_overrides_on_params_file(tmp_path: Path, library: Path):
    params = tmp_path / "look.json"
    params.write_text(json.dumps({"exposure": 0.1, "contrast": 0.3}))

    args = cli.parse_args(
        ["export", str(library), "wide.png", "--params", str(params), "--set", "exposure=0.7"]
    )

    assert cli.build_parameters(args) == AdjustmentParameters(exposure=0.7, contrast=0.3)


def test_build_geometry_is_none_without_options(library: Path):
    args = cli.parse_args(["export", str(library), "wide.png"])

    assert cli.build_geometry(args) is None


def test_build_geometry_collects_options(library: Path):
    args = cli.parse_args(
        ["export", str(library), "wide.png", "--rotation-turns", "5", "--aspect", "1.5", "--straighten", "2"]
    )

    geometry = cli.build_geometry(args)

    assert geometry is not None
    assert geometry.rotation_turns == 1
    assert geometry.aspect == 1.5
    assert geometry.straighten_degrees == 2.0


def test_run_preview_writes_jpeg(tmp_path: Path, library: Path):
    destination = tmp_path / "out" / "preview.jpg"

    status = cli.main(
        ["preview", str(library), "wide.png", "--max-side", "10", "--output", str(destination), "--set", "exposure=0.2"]
    )

    assert status == 0
    assert decode_jpeg(destination.read_bytes()).shape == (5, 10, 3)


def test_run_preview_defaults_to_working_directory(tmp_path: Path, library: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert cli.main(["preview", str(library), "tall.png", "--max-side", "10"]) == 0
    assert decode_jpeg((tmp_path / "tall_preview.jpg").read_bytes()).shape == (10, 5, 3)


def test_run_export_writes_every_asset(tmp_path: Path, library: Path):
    out_dir = tmp_path / "exports"

    status = cli.main(
        ["export", str(library), "wide.png", "tall.png", "--output-dir", str(out_dir), "--no-progress"]
    )

    assert status == 0
    shapes = sorted(decode_jpeg(path.read_bytes()).shape for path in out_dir.glob("*.jpg"))
    assert shapes == [(20, 40, 3), (40, 20, 3)]


def test_run_export_reports_failures(tmp_path: Path, library: Path, caplog):
    out_dir = tmp_path / "exports"

    with caplog.at_level(logging.ERROR, logger="luma_renderer"):
        status = cli.main(
            ["export", str(library), "wide.png", "missing.png", "--output-dir", str(out_dir), "--no-progress"]
        )

    assert status == 1
    assert len(list(out_dir.glob("*.jpg"))) == 1
    assert any("asset_not_found" in record.getMessage() for record in caplog.records)


def test_run_preview_missing_asset_returns_error_status(tmp_path: Path, library: Path):
    status = cli.main(
        ["preview", str(library), "missing.png", "--max-side", "10", "--output", str(tmp_path / "x.jpg")]
    )

    assert status == 1
    assert not (tmp_path / "x.jpg").exists()
