from __future__ import annotations

import argparse
import json
from pathlib import Path

import numpy as np

from viewsynth.buffers import MalformedBufferError, load_buffer, save_buffer
from viewsynth.core.selection import PoseAngles
from viewsynth.meta import ViewVolume, default_library_meta, load_library_meta
from viewsynth.raster import save_rasters
from viewsynth.sim.cube import write_sample_library
from viewsynth.synthesis import synthesize_view


def validate_library(library_dir: Path) -> None:
    """Check the manifest and every referenced buffer (shape, fields, shared width)."""
    library = load_library_meta(library_dir)
    widths: set[int] = set()
    for spec in library.samples:
        path = library.buffer_path(spec)
        if not path.exists():
            raise FileNotFoundError(f"Missing {path}")
        widths.add(load_buffer(path, normalized_depth=True).width)
    if len(widths) != 1:
        raise MalformedBufferError(f"sample buffers disagree on width: {sorted(widths)}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="viewsynth")
    sub = parser.add_subparsers(dest="cmd", required=True)

    ren = sub.add_parser("render-samples", help="Render the default sample library of a shaded cube (CPU ray-cast).")
    ren.add_argument("--out", type=Path, required=True)
    ren.add_argument("--size", type=int, default=64, help="Buffer width/height in pixels.")
    ren.add_argument("--distance", type=float, default=20.0, help="Camera distance to the object center.")
    ren.add_argument("--view-size", type=float, default=10.0, help="Orthographic view height in world units.")
    ren.add_argument("--near", type=float, default=1.0)
    ren.add_argument("--far", type=float, default=1000.0)

    val = sub.add_parser("validate-library", help="Validate library.json and the sample buffers it references.")
    val.add_argument("library_dir", type=Path)

    syn = sub.add_parser("synthesize", help="Synthesize a color+depth buffer for a new camera pose.")
    syn.add_argument("library_dir", type=Path)
    syn.add_argument("--pitch", type=float, default=None, help="Degrees; random in [0,180) if omitted.")
    syn.add_argument("--yaw", type=float, default=None, help="Degrees; random in [0,360) if omitted.")
    syn.add_argument("--roll", type=float, default=None, help="Degrees; random in [0,360) if omitted.")
    syn.add_argument("--seed", type=int, default=None, help="Seed for omitted angles.")
    syn.add_argument("--k", type=int, default=3, help="Number of nearest samples to blend.")
    syn.add_argument("--falloff", type=float, default=0.1, help="Exponential distance falloff rate.")
    syn.add_argument("--method", type=str, default="reproject", choices=["reproject", "aligned"])
    syn.add_argument(
        "--depth-tolerance",
        type=float,
        default=0.0,
        help="Depth band treated as a tie when compositing (0 = exact equality).",
    )
    syn.add_argument("--workers", type=int, default=None, help="Threads used to load sample buffers.")
    syn.add_argument("--out", type=Path, required=True)

    ras = sub.add_parser("rasterize", help="Write color and depth PNGs for a buffer.")
    ras.add_argument("buffer", type=Path)
    ras.add_argument("--out-prefix", type=Path, required=True)

    args = parser.parse_args(argv)

    if args.cmd == "render-samples":
        volume = ViewVolume.from_view_size(args.view_size, near=args.near, far=args.far)
        library = default_library_meta(view_volume=volume, distance=args.distance)
        path = write_sample_library(args.out, library, size=args.size)
        print(f"Wrote {path}")
        return 0

    if args.cmd == "validate-library":
        validate_library(args.library_dir)
        return 0

    if args.cmd == "synthesize":
        rng = np.random.default_rng(args.seed)
        target = PoseAngles(
            pitch=args.pitch if args.pitch is not None else float(rng.uniform(0.0, 180.0)),
            yaw=args.yaw if args.yaw is not None else float(rng.uniform(0.0, 360.0)),
            roll=args.roll if args.roll is not None else float(rng.uniform(0.0, 360.0)),
        )
        library = load_library_meta(args.library_dir)
        result = synthesize_view(
            target,
            library,
            k=args.k,
            falloff=args.falloff,
            method=args.method,
            depth_tolerance=args.depth_tolerance,
            workers=args.workers,
        )
        print(f"target: pitch={target.pitch:.2f} yaw={target.yaw:.2f} roll={target.roll:.2f}")
        for bw in result.weights:
            print(f"{bw.name}: distance={bw.distance:.2f} weight={bw.weight * 100:.1f}%")
        print(json.dumps(result.stats, sort_keys=True))
        save_buffer(args.out, result.buffer)
        print(f"Wrote {args.out}")
        return 0

    if args.cmd == "rasterize":
        buf = load_buffer(args.buffer, normalized_depth=False)
        color_path, depth_path = save_rasters(buf, args.out_prefix)
        print(f"Wrote {color_path}")
        print(f"Wrote {depth_path}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
