from viewsynth import meta
from viewsynth.buffers import MalformedBufferError, PixelSample, ViewBuffer, load_buffer, parse_buffer, save_buffer
from viewsynth.core.camera import CameraPose, build_camera, to_camera_space, to_world_space
from viewsynth.core.compositor import ZBufferCompositor, composite
from viewsynth.core.projection import reproject, unproject
from viewsynth.core.selection import BlendWeight, PoseAngles, select_and_weight
from viewsynth.meta import LibraryMeta, MetaValidationError, ViewVolume, load_library_meta
from viewsynth.synthesis import SampleView, SynthesisResult, synthesize_view

__all__ = [
    "meta",
    "MalformedBufferError",
    "PixelSample",
    "ViewBuffer",
    "load_buffer",
    "parse_buffer",
    "save_buffer",
    "CameraPose",
    "build_camera",
    "to_camera_space",
    "to_world_space",
    "ZBufferCompositor",
    "composite",
    "reproject",
    "unproject",
    "BlendWeight",
    "PoseAngles",
    "select_and_weight",
    "LibraryMeta",
    "MetaValidationError",
    "ViewVolume",
    "load_library_meta",
    "SampleView",
    "SynthesisResult",
    "synthesize_view",
]
