from __future__ import annotations

import json
from pathlib import Path

import pytest

from panostitch.api.options import ConfigError, StitchOptions, load_stitch_options, parse_stitch_options


def test_defaults():
    opts = StitchOptions()
    assert opts.scale_factor == 0.2
    assert opts.panorama_size == (0, 0)
    assert opts.fisheye_masking is False
    assert opts.fisheye_masking_margin == 0.05
    assert opts.transition_size == 10.0
    assert opts.workers == 1
    assert opts.parallel == "pixels"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"scale_factor": 0.0},
        {"panorama_size": (-1, 10)},
        {"fisheye_masking_margin": 1.0},
        {"transition_size": 0.0},
        {"workers": 0},
        {"parallel": "tiles"},
    ],
)
def test_invalid_values_are_rejected(kwargs):
    with pytest.raises(ConfigError):
        StitchOptions(**kwargs)


def test_replace_ignores_unset_overrides():
    base = StitchOptions(scale_factor=0.5, workers=4)
    out = base.replace(scale_factor=None, panorama_size=[800, 400], workers=None)
    assert out.scale_factor == 0.5
    assert out.workers == 4
    assert out.panorama_size == (800, 400)


def test_parse_and_load(tmp_path: Path):
    data = {
        "schema_version": "panostitch.options.v0",
        "scale_factor": 0.25,
        "panorama_size": [1024, 512],
        "fisheye_masking": True,
        "workers": 2,
        "parallel": "views",
    }
    p = tmp_path / "opts.json"
    p.write_text(json.dumps(data), encoding="utf-8")
    opts = load_stitch_options(p)
    assert opts == parse_stitch_options(data)
    assert opts.panorama_size == (1024, 512)
    assert opts.fisheye_masking is True
    assert opts.parallel == "views"


def test_parse_rejects_unknown_or_malformed():
    with pytest.raises(ConfigError):
        parse_stitch_options({"scale": 0.3})
    with pytest.raises(ConfigError):
        parse_stitch_options({"fisheye_masking": "yes"})
    with pytest.raises(ConfigError):
        parse_stitch_options({"workers": "many"})
    with pytest.raises(ConfigError):
        parse_stitch_options({"schema_version": "panostitch.options.v9"})


def test_load_rejects_invalid_json(tmp_path: Path):
    p = tmp_path / "opts.json"
    p.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_stitch_options(p)
