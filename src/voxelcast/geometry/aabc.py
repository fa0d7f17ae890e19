"""Ray intersection with axis-aligned bounding cubes (AABCs).

This module implements the candidate-plane ("slab") test from Graphics Gems
(Woo, "Fast Ray-Box Intersection") specialized for cubes. For each axis the
ray origin is classified against the cube's extent on that axis. Axes where
the origin lies outside contribute a candidate plane; the ray can only be
inside the cube once it has crossed every candidate plane it needs to cross,
so the candidate plane with the LARGEST parametric distance is the entry
face. The entry point is then checked against the remaining two axes.

The result is returned as data (HitData.hit == 0 for a miss) so that the
caller can branch without any exception channel inside kernels.

Distances reported in HitData are squared Euclidean distances from the ray
origin. Only their relative order is meaningful to the traversal.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.voxelcast.geometry.aabc import intersect_aabc, vec3
    >>> @ti.kernel
    ... def probe() -> ti.i32:
    ...     hit = intersect_aabc(
    ...         vec3(10.0, 0.5, 0.5), vec3(-1.0, 0.0, 0.0), vec3(0.0, 0.0, 0.0), 2.0
    ...     )
    ...     return hit.hit
"""

import taichi as ti
import taichi.math as tm

from src.voxelcast.core.ray import length_squared, make_ray, ray_at

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Position of the ray origin relative to the cube's extent on one axis
QUADRANT_BELOW = 0
QUADRANT_ABOVE = 1
QUADRANT_INSIDE = 2

# Parametric distance used for axes that cannot bound the entry point
NO_CANDIDATE = -1.0


@ti.dataclass
class HitData:
    """Result of a ray-cube intersection test.

    Attributes:
        hit: 1 if the ray enters (or starts inside) the cube, 0 otherwise.
        axis: The axis (0=X, 1=Y, 2=Z) whose face the ray crossed to enter.
            Only valid if hit == 1. Always 0 when the origin is inside.
        point: The entry point on the cube surface, or the ray origin when
            the origin is already inside the cube. Only valid if hit == 1.
        distance: Squared distance from the ray origin to the entry point.
            0 when the origin is inside. Only valid if hit == 1.
    """

    hit: ti.i32
    axis: ti.i32
    point: vec3
    distance: ti.f32


@ti.func
def intersect_aabc(
    ray_origin: vec3,
    ray_dir: vec3,
    cube_min: vec3,
    cube_edge: ti.f32,
) -> HitData:
    """Find where a ray enters an axis-aligned cube.

    Algorithm:
        1. Classify the origin below / above / inside the cube on each axis.
           Below picks the min plane as candidate, above picks the max plane.
        2. If the origin is inside on all three axes, report a hit at
           distance 0 with axis 0 and the origin as hit point.
        3. For each axis with a candidate plane and a non-zero direction
           component compute t = (plane - origin) / dir; other axes get
           NO_CANDIDATE.
        4. The axis with the largest t is the entry plane. A negative
           largest t means the cube is behind the ray.
        5. The entry point must lie within [min, max] on the other two axes.

    Args:
        ray_origin: The starting point of the ray.
        ray_dir: The ray direction (normalized for comparable distances).
        cube_min: The cube's minimum corner.
        cube_edge: The cube's edge length.

    Returns:
        A HitData record. Check hit to determine if intersection occurred.
    """
    cube_max = cube_min + cube_edge

    quadrant = ti.Vector([QUADRANT_INSIDE, QUADRANT_INSIDE, QUADRANT_INSIDE])
    candidate = vec3(0.0, 0.0, 0.0)
    origin_inside = 1

    for i in ti.static(range(3)):
        if ray_origin[i] < cube_min[i]:
            quadrant[i] = QUADRANT_BELOW
            candidate[i] = cube_min[i]
            origin_inside = 0
        elif ray_origin[i] > cube_max[i]:
            quadrant[i] = QUADRANT_ABOVE
            candidate[i] = cube_max[i]
            origin_inside = 0

    did_hit = 0
    hit_axis = 0
    hit_point = ray_origin
    hit_distance = 0.0

    if origin_inside == 1:
        did_hit = 1
    else:
        plane_t = vec3(NO_CANDIDATE, NO_CANDIDATE, NO_CANDIDATE)
        for i in ti.static(range(3)):
            if quadrant[i] != QUADRANT_INSIDE and ray_dir[i] != 0.0:
                plane_t[i] = (candidate[i] - ray_origin[i]) / ray_dir[i]

        # Last candidate plane crossed binds the entry point
        largest = plane_t[0]
        for i in ti.static(range(1, 3)):
            if plane_t[i] > largest:
                largest = plane_t[i]
                hit_axis = i

        if largest >= 0.0:
            point = ray_at(make_ray(ray_origin, ray_dir), largest)
            within = 1
            for i in ti.static(range(3)):
                if i == hit_axis:
                    point[i] = candidate[i]
                elif point[i] < cube_min[i] or point[i] > cube_max[i]:
                    within = 0

            if within == 1:
                did_hit = 1
                hit_point = point
                hit_distance = length_squared(point - ray_origin)

    return HitData(
        hit=did_hit,
        axis=hit_axis,
        point=hit_point,
        distance=hit_distance,
    )
