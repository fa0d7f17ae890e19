"""Core ray casting module.

Components:
    ray: Ray data structure and small vector helpers
    traversal: Iterative octree traversal resolving a ray to a face color
    renderer: Render target, tiled frame kernel and the OctreeRenderer

All per-ray work runs inside Taichi kernels; one primary ray is cast per
pixel and every pixel is independent.
"""

from .ray import Ray, length_squared, make_ray, normalize, ray_at, vec3

# Note: traversal and renderer are NOT imported here; they allocate device
# fields at import. Import them directly when needed:
#   from src.voxelcast.core.renderer import OctreeRenderer

__all__ = [
    "Ray",
    "ray_at",
    "make_ray",
    "vec3",
    "length_squared",
    "normalize",
]
