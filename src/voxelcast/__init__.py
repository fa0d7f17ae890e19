"""Sparse voxel octree ray caster built on Taichi.

This package renders images by casting one ray per pixel into a flat,
serialized sparse voxel octree and resolving the nearest occupied voxel's
visible face to a texture-array color. Features:
- Candidate-plane ray/cube intersection
- Iterative, stackless-recursion octree traversal with a bounded depth
- Per-face texture sampling (six layers per material)
- Tiled data-parallel frame rendering on CPU or GPU

Subpackages:
    core: Ray utilities, octree traversal and the frame renderer
    geometry: Axis-aligned bounding cube intersection
    octree: Buffer layout, host-side builder and device storage
    textures: Texture array storage and face sampling
    camera: Pinhole ray generation and a fly-through camera
    preview: PNG export and interactive preview window
"""

__version__ = "0.1.0"
