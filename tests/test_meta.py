from __future__ import annotations

import json
from pathlib import Path

import pytest

from viewsynth.meta import (
    LIBRARY_SCHEMA,
    MetaValidationError,
    ViewVolume,
    default_library_meta,
    load_library_meta,
    parse_library_meta,
    parse_view_volume,
)


def _library_dict(**overrides):
    data = {
        "schema_version": LIBRARY_SCHEMA,
        "distance": 20.0,
        "view_volume": {"left": -5, "right": 5, "top": 5, "bottom": -5, "near": 1, "far": 1000},
        "samples": [
            {"name": "front", "pitch": 90, "yaw": 0},
            {"name": "top", "pitch": 10, "yaw": 0, "roll": 45, "buffer": "top_view.json"},
        ],
    }
    data.update(overrides)
    return data


def test_parse_library_meta_ok():
    lib = parse_library_meta(_library_dict())
    assert lib.distance == 20.0
    assert lib.view_volume == ViewVolume.from_view_size(10.0, near=1.0, far=1000.0)
    assert [s.name for s in lib.samples] == ["front", "top"]
    assert lib.samples[0].buffer == "front.json"
    assert lib.samples[0].angles.roll == 0.0
    assert lib.samples[1].buffer == "top_view.json"
    assert lib.samples[1].angles.roll == 45.0


def test_parse_library_meta_rejects_bad_input():
    with pytest.raises(MetaValidationError):
        parse_library_meta(_library_dict(schema_version="other"))
    with pytest.raises(MetaValidationError):
        parse_library_meta(_library_dict(samples=[]))
    with pytest.raises(MetaValidationError, match="duplicate"):
        parse_library_meta(
            _library_dict(samples=[{"name": "a", "pitch": 0, "yaw": 0}, {"name": "a", "pitch": 1, "yaw": 0}])
        )
    with pytest.raises(MetaValidationError):
        parse_library_meta(_library_dict(samples=[{"name": "a", "yaw": 0}]))


@pytest.mark.parametrize(
    "volume",
    [
        {"left": 5, "right": -5, "top": 5, "bottom": -5, "near": 1, "far": 1000},
        {"left": -5, "right": 5, "top": -5, "bottom": 5, "near": 1, "far": 1000},
        {"left": -5, "right": 5, "top": 5, "bottom": -5, "near": 10, "far": 10},
        {"left": -5, "right": 5, "top": 5, "bottom": -5, "near": 1},
    ],
)
def test_parse_view_volume_rejects(volume):
    with pytest.raises(MetaValidationError):
        parse_view_volume(volume)


def test_library_dict_roundtrip_and_load(tmp_path: Path):
    lib = default_library_meta()
    (tmp_path / "library.json").write_text(json.dumps(lib.to_dict()), encoding="utf-8")
    loaded = load_library_meta(tmp_path)
    assert loaded.samples == lib.samples
    assert loaded.view_volume == lib.view_volume
    assert loaded.buffer_path(loaded.samples[0]) == tmp_path.resolve() / "angle1.json"


def test_load_library_meta_missing(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_library_meta(tmp_path)
