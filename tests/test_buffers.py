from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from viewsynth.buffers import MalformedBufferError, ViewBuffer, load_buffer, parse_buffer, save_buffer


def _records(n: int, d=0.5) -> list[dict]:
    return [{"r": 10, "g": 20, "b": 30, "a": 1.0, "d": d} for _ in range(n)]


def test_parse_buffer_ok():
    recs = _records(4)
    recs[2]["d"] = None
    buf = parse_buffer(recs)
    assert buf.width == 2 and buf.height == 2
    assert buf.pixel(2).d is None
    assert not buf.pixel(2).has_surface
    px = buf.pixel_at(1, 0)
    assert (px.r, px.g, px.b, px.a, px.d) == (10, 20, 30, 1.0, 0.5)


@pytest.mark.parametrize("n", [0, 3, 8])
def test_parse_buffer_rejects_non_square(n: int):
    with pytest.raises(MalformedBufferError):
        parse_buffer(_records(n))


def test_parse_buffer_rejects_missing_field():
    recs = _records(4)
    del recs[1]["a"]
    with pytest.raises(MalformedBufferError, match="missing field: a"):
        parse_buffer(recs)


def test_parse_buffer_rejects_bad_records():
    recs = _records(4)
    recs[0] = [1, 2, 3]
    with pytest.raises(MalformedBufferError):
        parse_buffer(recs)
    recs = _records(4)
    recs[3]["g"] = "green"
    with pytest.raises(MalformedBufferError):
        parse_buffer(recs)
    with pytest.raises(MalformedBufferError):
        parse_buffer({"r": 1})


def test_depth_range_only_enforced_for_sample_buffers():
    recs = _records(4, d=12.5)
    with pytest.raises(MalformedBufferError):
        parse_buffer(recs)
    buf = parse_buffer(recs, normalized_depth=False)
    assert buf.pixel(0).d == 12.5


def test_save_rounds_colors_and_keeps_null_depth(tmp_path: Path):
    buf = ViewBuffer.from_arrays(
        rgb=[[10.4, 20.5, 254.9], [0.0, 0.0, 0.0], [1.0, 2.0, 3.0], [300.0, -4.0, 7.6]],
        alpha=[1.0, 0.0, 0.25, 1.0],
        depth=[1.5, np.nan, 0.0, 42.0],
    )
    path = save_buffer(tmp_path / "out" / "buf.json", buf)
    recs = json.loads(path.read_text(encoding="utf-8"))
    assert recs[0] == {"r": 10, "g": 21, "b": 255, "a": 1.0, "d": 1.5}
    assert recs[1]["d"] is None
    assert recs[3]["r"] == 255 and recs[3]["g"] == 0 and recs[3]["b"] == 8

    again = load_buffer(path, normalized_depth=False)
    assert np.array_equal(again.surface, [True, False, True, True])
    assert again.pixel(2).d == 0.0


def test_load_buffer_reports_path(tmp_path: Path):
    p = tmp_path / "bad.json"
    p.write_text(json.dumps(_records(5)), encoding="utf-8")
    with pytest.raises(MalformedBufferError, match="bad.json"):
        load_buffer(p)


def test_filled_buffer():
    buf = ViewBuffer.filled(3, (1.0, 2.0, 3.0), alpha=0.5, depth=0.25)
    assert buf.size == 9
    assert buf.surface.all()
    empty = ViewBuffer.filled(3, (0.0, 0.0, 0.0), depth=None)
    assert not empty.surface.any()


@pytest.mark.parametrize(
    "key, value",
    [("r", "10"), ("a", "0.5"), ("d", "0.5"), ("g", True), ("d", False), ("b", None), ("a", [1.0])],
)
def test_parse_buffer_rejects_non_number_fields(key: str, value):
    recs = _records(4)
    recs[1][key] = value
    with pytest.raises(MalformedBufferError, match=f"field {key} is not a number"):
        parse_buffer(recs)


@pytest.mark.parametrize("key, value", [("r", 256), ("g", -1), ("b", 255.5), ("a", 1.5), ("a", -0.1)])
def test_parse_buffer_rejects_out_of_range_color(key: str, value):
    recs = _records(4)
    recs[2][key] = value
    with pytest.raises(MalformedBufferError):
        parse_buffer(recs, normalized_depth=False)


def test_save_clips_alpha_into_range(tmp_path: Path):
    buf = ViewBuffer.filled(2, (1.0, 2.0, 3.0), alpha=1.0 + 1e-12, depth=3.0)
    again = load_buffer(save_buffer(tmp_path / "a.json", buf), normalized_depth=False)
    assert np.all(again.alpha == 1.0)
