from __future__ import annotations

import json
from pathlib import Path

import pytest

from viewsynth.buffers import MalformedBufferError, ViewBuffer, load_buffer, save_buffer
from viewsynth.cli.main import main, validate_library
from viewsynth.meta import LIBRARY_FILENAME, MetaValidationError


@pytest.mark.integration
def test_render_synthesize_rasterize(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    lib = tmp_path / "lib"
    assert main(["render-samples", "--out", str(lib), "--size", "16"]) == 0
    assert (lib / LIBRARY_FILENAME).exists()
    assert len(list(lib.glob("angle*.json"))) == 6

    assert main(["validate-library", str(lib)]) == 0

    out = tmp_path / "synth.json"
    rc = main(
        [
            "synthesize",
            str(lib),
            "--pitch",
            "40",
            "--yaw",
            "50",
            "--roll",
            "0",
            "--out",
            str(out),
        ]
    )
    assert rc == 0
    printed = capsys.readouterr().out
    assert "target: pitch=40.00 yaw=50.00 roll=0.00" in printed
    assert printed.count("weight=") == 3
    stats = json.loads([line for line in printed.splitlines() if line.startswith("{")][0])
    assert stats["n_pixels"] == 256.0
    assert f"Wrote {out}" in printed

    buf = load_buffer(out, normalized_depth=False)
    assert buf.width == 16
    assert buf.surface.any()

    prefix = tmp_path / "png" / "synth"
    assert main(["rasterize", str(out), "--out-prefix", str(prefix)]) == 0
    assert (tmp_path / "png" / "synth_color.png").exists()
    assert (tmp_path / "png" / "synth_depth.png").exists()


@pytest.mark.integration
def test_synthesize_random_pose_is_seeded(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    lib = tmp_path / "lib"
    main(["render-samples", "--out", str(lib), "--size", "8"])
    capsys.readouterr()

    lines = []
    for name in ("a.json", "b.json"):
        main(["synthesize", str(lib), "--seed", "3", "--method", "aligned", "--out", str(tmp_path / name)])
        lines.append(capsys.readouterr().out.splitlines()[0])
    assert lines[0] == lines[1]
    assert lines[0].startswith("target: ")


def test_validate_library_reports_missing_buffer(tmp_path: Path) -> None:
    main(["render-samples", "--out", str(tmp_path), "--size", "4"])
    (tmp_path / "angle3.json").unlink()
    with pytest.raises(FileNotFoundError):
        validate_library(tmp_path)


def test_validate_library_rejects_bad_manifest(tmp_path: Path) -> None:
    (tmp_path / LIBRARY_FILENAME).write_text(json.dumps({"schema_version": "nope"}), encoding="utf-8")
    with pytest.raises(MetaValidationError):
        validate_library(tmp_path)


def test_validate_library_rejects_mixed_widths(tmp_path: Path) -> None:
    main(["render-samples", "--out", str(tmp_path), "--size", "4"])
    save_buffer(tmp_path / "angle2.json", ViewBuffer.filled(5, (10.0, 10.0, 10.0), depth=0.5))
    with pytest.raises(MalformedBufferError, match="disagree on width"):
        validate_library(tmp_path)
