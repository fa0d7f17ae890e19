"""Geometry module: ray intersection with axis-aligned bounding cubes.

The intersection routine is a Taichi function (@ti.func) so that it can be
called per child cube from inside the traversal kernel.
"""

from .aabc import HitData, intersect_aabc

__all__ = [
    "HitData",
    "intersect_aabc",
]
