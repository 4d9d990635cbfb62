from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from panostitch.cli.main import main
from panostitch.core.image_io import read_rgba
from panostitch.core.spherical import equirectangular_rays
from panostitch.sim.rig import gradient_environment


@pytest.mark.integration
def test_pipeline_generate_validate_stitch(tmp_path: Path, capsys) -> None:
    ds_root = tmp_path / "ds"
    assert main(
        [
            "-v",
            "warning",
            "generate-rig-dataset",
            "--out",
            str(ds_root),
            "--cameras",
            "6",
            "--width",
            "120",
            "--height",
            "90",
            "--fov-deg",
            "100",
            "--environment",
            "gradient",
            "--image-format",
            "npy",
            "--unposed-views",
            "1",
        ]
    ) == 0
    dataset = ds_root / "dataset.json"

    assert main(["validate-dataset", str(dataset)]) == 0
    assert main(["estimate-size", str(dataset), "--scale-factor", "0.25"]) == 0
    out_lines = capsys.readouterr().out.strip().splitlines()
    assert out_lines[-2] == "6 valid views out of 7"
    assert out_lines[-1] == "180 22"

    config = tmp_path / "opts.json"
    config.write_text(json.dumps({"workers": 2, "parallel": "views"}), encoding="utf-8")
    pano = tmp_path / "pano.npz"
    assert main(
        [
            "stitch",
            "-i",
            str(dataset),
            "-o",
            str(pano),
            "--config",
            str(config),
            "--panorama-size",
            "128",
            "64",
        ]
    ) == 0

    rgba = read_rgba(pano)
    assert rgba.shape == (64, 128, 4)
    covered = rgba[..., 3] > 0.0
    # Every longitude on the horizon is seen by at least one camera.
    assert np.all(covered[32])
    expected = gradient_environment(equirectangular_rays(128, 64))
    assert np.max(np.abs(rgba[..., :3][covered] - expected[covered])) < 0.05


def test_cli_reports_bad_dataset(tmp_path: Path) -> None:
    bad = tmp_path / "dataset.json"
    bad.write_text(json.dumps({"schema_version": "something.else"}), encoding="utf-8")
    assert main(["stitch", "-i", str(bad), "-o", str(tmp_path / "pano.npz")]) == 1
    assert not (tmp_path / "pano.npz").exists()
    assert main(["validate-dataset", str(tmp_path / "missing.json")]) == 1


def test_cli_rejects_bad_options(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        main(["stitch", "-i", "a.json", "-o", "b.npz", "--parallel", "tiles"])
    config = tmp_path / "opts.json"
    config.write_text(json.dumps({"transition_size": 0}), encoding="utf-8")
    assert main(["estimate-size", "a.json", "--config", str(config)]) == 1
