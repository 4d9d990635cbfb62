from __future__ import annotations


def test_public_api_exports() -> None:
    import panostitch as ps

    assert hasattr(ps, "stitch_panorama")
    assert hasattr(ps, "stitch_dataset")
    assert hasattr(ps, "StitchOptions")
    assert hasattr(ps, "PanoramaAccumulator")
    assert hasattr(ps, "load_scene")


def test_api_subpackage_exports() -> None:
    from panostitch import api

    for name in api.__all__:
        assert hasattr(api, name), name
