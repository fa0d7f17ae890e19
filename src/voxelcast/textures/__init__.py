"""Texture module: the per-material texture array and face sampling.

Each material id owns six layers (top, bottom, right, left, back, front).
"""

from .sampler import (
    FACE_NAMES,
    FACES_PER_MATERIAL,
    FaceSample,
    clear_textures,
    fetch_texel,
    load_texture_strip,
    make_palette_textures,
    sample_face,
    select_face,
    upload_textures,
)

__all__ = [
    "FACE_NAMES",
    "FACES_PER_MATERIAL",
    "FaceSample",
    "clear_textures",
    "fetch_texel",
    "load_texture_strip",
    "make_palette_textures",
    "sample_face",
    "select_face",
    "upload_textures",
]
