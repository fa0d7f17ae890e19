"""Ray record and the vector helpers used by octree traversal.

Primary rays leave the eye with a unit direction, which keeps the squared
entry distances reported by the cube intersection comparable across all
children of a node. Everything here is callable from Taichi kernels.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> @ti.kernel
    ... def entry() -> ti.f32:
    ...     ray = make_ray(vec3(10.0, 0.5, 0.5), vec3(-1.0, 0.0, 0.0))
    ...     return ray_at(ray, 9.0).x  # 1.0, the voxel's max X face
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3


@ti.dataclass
class Ray:
    """A half-line cast into the octree.

    Attributes:
        origin: Where the ray starts (the eye for primary rays).
        direction: Unit travel direction.
    """

    origin: vec3
    direction: vec3


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Point reached after travelling t along the ray (t < 0 lies behind it)."""
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    """Pack an origin and a direction (not normalized here) into a Ray."""
    return Ray(origin=origin, direction=direction)


@ti.func
def length_squared(v: vec3) -> ti.f32:
    """Squared length of v.

    Candidate cubes are ranked by squared distance, so no square root is
    ever needed during traversal.
    """
    return tm.dot(v, v)


@ti.func
def normalize(v: vec3) -> vec3:
    return tm.normalize(v)
