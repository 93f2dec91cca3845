from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from viewsynth.core.selection import PoseAngles

LIBRARY_SCHEMA = "viewsynth.library.v0"
LIBRARY_FILENAME = "library.json"

# Default capture poses: (pitch, yaw, roll) in degrees.
DEFAULT_SAMPLE_ANGLES: tuple[tuple[str, float, float, float], ...] = (
    ("angle1", 30.0, 60.0, 90.0),
    ("angle2", 90.0, 30.0, 60.0),
    ("angle3", 0.0, 20.0, 180.0),
    ("angle4", 30.0, 60.0, 0.0),
    ("angle5", 30.0, 0.0, 0.0),
    ("angle6", 0.0, 0.0, 0.0),
)


class MetaValidationError(ValueError):
    pass


@dataclass(frozen=True)
class ViewVolume:
    """
    Orthographic view volume shared by every sample camera and the target camera.

    Buffers captured under one volume are only valid under that same volume.
    """

    left: float
    right: float
    top: float
    bottom: float
    near: float
    far: float

    @classmethod
    def from_view_size(cls, view_size: float = 10.0, near: float = 1.0, far: float = 1000.0, aspect: float = 1.0) -> "ViewVolume":
        half_h = float(view_size) / 2.0
        half_w = half_h * float(aspect)
        return cls(left=-half_w, right=half_w, top=half_h, bottom=-half_h, near=float(near), far=float(far))

    @property
    def half_width(self) -> float:
        return (self.right - self.left) / 2.0

    @property
    def half_height(self) -> float:
        return (self.top - self.bottom) / 2.0

    def to_dict(self) -> dict[str, float]:
        return {
            "left": self.left,
            "right": self.right,
            "top": self.top,
            "bottom": self.bottom,
            "near": self.near,
            "far": self.far,
        }


@dataclass(frozen=True)
class SampleSpec:
    name: str
    angles: PoseAngles
    buffer: str  # file name relative to the library directory


@dataclass(frozen=True)
class LibraryMeta:
    schema_version: str
    distance: float
    view_volume: ViewVolume
    samples: tuple[SampleSpec, ...]
    root: Path | None = None

    def buffer_path(self, sample: SampleSpec) -> Path:
        if self.root is None:
            raise ValueError("library has no root directory")
        return self.root / sample.buffer

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "distance": self.distance,
            "view_volume": self.view_volume.to_dict(),
            "samples": [
                {
                    "name": s.name,
                    "pitch": s.angles.pitch,
                    "yaw": s.angles.yaw,
                    "roll": s.angles.roll,
                    "buffer": s.buffer,
                }
                for s in self.samples
            ],
        }


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise MetaValidationError(msg)


def parse_view_volume(data: dict[str, Any]) -> ViewVolume:
    _require(isinstance(data, dict), "view_volume must be an object")
    values: dict[str, float] = {}
    for key in ("left", "right", "top", "bottom", "near", "far"):
        raw = data.get(key)
        _require(raw is not None, f"view_volume.{key} is required")
        values[key] = float(raw)

    _require(values["right"] > values["left"], "view_volume.right must be > left")
    _require(values["top"] > values["bottom"], "view_volume.top must be > bottom")
    _require(values["near"] >= 0.0, "view_volume.near must be >= 0")
    _require(values["far"] > values["near"], "view_volume.far must be > near")
    return ViewVolume(**values)


def parse_library_meta(data: dict[str, Any], root: Path | None = None) -> LibraryMeta:
    schema_version = data.get("schema_version")
    _require(schema_version == LIBRARY_SCHEMA, f"schema_version must be {LIBRARY_SCHEMA}")

    distance = float(data.get("distance", 20.0))
    _require(distance > 0.0, "distance must be > 0")

    view_volume = parse_view_volume(data.get("view_volume", {}))

    raw_samples = data.get("samples")
    _require(isinstance(raw_samples, list) and len(raw_samples) > 0, "samples must be a non-empty list")

    samples: list[SampleSpec] = []
    seen: set[str] = set()
    for i, s in enumerate(raw_samples):
        _require(isinstance(s, dict), f"samples[{i}] must be an object")
        name = s.get("name")
        _require(isinstance(name, str) and name != "", f"samples[{i}].name is required")
        _require(name not in seen, f"duplicate sample name: {name}")
        seen.add(name)
        for key in ("pitch", "yaw"):
            _require(s.get(key) is not None, f"samples[{i}].{key} is required")
        angles = PoseAngles(pitch=float(s["pitch"]), yaw=float(s["yaw"]), roll=float(s.get("roll", 0.0)))
        samples.append(SampleSpec(name=name, angles=angles, buffer=str(s.get("buffer", f"{name}.json"))))

    return LibraryMeta(
        schema_version=schema_version,
        distance=distance,
        view_volume=view_volume,
        samples=tuple(samples),
        root=root,
    )


def load_library_meta(library_dir: Path) -> LibraryMeta:
    library_dir = Path(library_dir).resolve()
    path = library_dir / LIBRARY_FILENAME
    if not path.exists():
        raise FileNotFoundError(f"Missing {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    return parse_library_meta(data, root=library_dir)


def default_library_meta(view_volume: ViewVolume | None = None, distance: float = 20.0, root: Path | None = None) -> LibraryMeta:
    return LibraryMeta(
        schema_version=LIBRARY_SCHEMA,
        distance=float(distance),
        view_volume=view_volume or ViewVolume.from_view_size(),
        samples=tuple(
            SampleSpec(name=name, angles=PoseAngles(pitch=p, yaw=y, roll=r), buffer=f"{name}.json")
            for name, p, y, r in DEFAULT_SAMPLE_ANGLES
        ),
        root=root,
    )
