"""Iterative octree traversal resolving a ray to the nearest visible voxel.

Kernels cannot recurse, so the depth-first walk keeps its own per-level
state in small fixed-size local vectors indexed by level (1-based, level 0
means "above the root"):

    best_distance[level]   distance of the child last accepted at level
    parent_min[level]      minimum corner to restore when leaving level
    parent_index[level]    node record to restore when leaving level

At each node every occupied child cube is intersected with the ray, and the
nearest child whose distance is strictly greater than best_distance[level]
is chosen. Because best_distance only grows while a node is being visited,
children are entered in near-to-far order and each child at most once,
without sorting the candidates. When no child qualifies the walk ascends;
when a child is found at a node of edge length 2 its slot holds a material
id and the face of that voxel is sampled.

Every outcome is reported as data in TraceResult.status:

    STATUS_HIT        a voxel was found and its face color sampled
    STATUS_MISS       the walk climbed back above the root
    STATUS_OVERFLOW   descent exceeded MAX_DEPTH (malformed or cyclic buffer)

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.voxelcast.core.traversal import traverse, vec3
    >>> @ti.kernel
    ... def probe() -> ti.i32:
    ...     return traverse(vec3(10.0, 0.5, 0.5), vec3(-1.0, 0.0, 0.0)).status
"""

import taichi as ti
import taichi.math as tm

from src.voxelcast.geometry.aabc import intersect_aabc
from src.voxelcast.octree.layout import (
    EMPTY,
    HEADER_EDGE,
    HEADER_MIN,
    LEAF_PARENT_EDGE,
    MAX_DEPTH,
    NODE_SIZE,
    ROOT_INDEX,
    child_origin,
)
from src.voxelcast.octree.storage import octree
from src.voxelcast.textures.sampler import fetch_texel, select_face

# Type aliases for vectors using Taichi's math module
vec2 = tm.vec2
vec3 = tm.vec3

STATUS_RUNNING = -1
STATUS_MISS = 0
STATUS_HIT = 1
STATUS_OVERFLOW = 2

# Octant value reported when no child qualifies
NO_CHILD = -1

# best_distance value for a level where no child has been accepted yet
NO_DISTANCE = -1.0

# Per-level arrays hold levels 0..MAX_DEPTH
STACK_SIZE = MAX_DEPTH + 1

# =============================================================================
# Render Settings (GPU-accessible)
# =============================================================================

_background_color = ti.Vector.field(3, dtype=ti.f32, shape=())
_diagnostic_mode = ti.field(dtype=ti.i32, shape=())
_diagnostic_scale = ti.field(dtype=ti.f32, shape=())


def set_background_color(color: tuple[float, float, float]) -> None:
    """Set the color returned for rays that hit nothing."""
    _background_color[None] = [color[0], color[1], color[2]]


def set_diagnostic_mode(enabled: bool, scale: float = 64.0) -> None:
    """Toggle the iteration-count overlay on missed rays.

    When enabled, a missed ray adds iterations / scale to every channel of
    the background color, so expensive regions of the octree show up as
    bright areas. Hits are unaffected.

    Args:
        enabled: Whether the overlay is drawn.
        scale: Iteration count that maps to full intensity.

    Raises:
        ValueError: If scale is not positive.
    """
    if scale <= 0:
        raise ValueError(f"Diagnostic scale must be positive, got {scale}")
    _diagnostic_mode[None] = 1 if enabled else 0
    _diagnostic_scale[None] = scale


def get_render_settings() -> dict[str, object]:
    """Get the current traversal settings for debugging."""
    bg = _background_color[None]
    return {
        "background_color": (float(bg[0]), float(bg[1]), float(bg[2])),
        "diagnostic_mode": bool(_diagnostic_mode[None]),
        "diagnostic_scale": float(_diagnostic_scale[None]),
    }


@ti.dataclass
class ChildHit:
    """The nearest eligible child of a node.

    Attributes:
        octant: Octant index of the child, or NO_CHILD if none qualifies.
        axis: Axis of the child face the ray entered through.
        point: Entry point into the child cube.
        distance: Squared distance from the ray origin to the entry point.
    """

    octant: ti.i32
    axis: ti.i32
    point: vec3
    distance: ti.f32


@ti.dataclass
class TraceResult:
    """Outcome of tracing one ray through the octree.

    Attributes:
        status: STATUS_HIT, STATUS_MISS or STATUS_OVERFLOW.
        iterations: Number of node visits performed.
        color: Sampled face color on a hit, background color otherwise.
        material: Material id of the voxel hit (0 unless status is HIT).
        axis: Axis of the voxel face hit.
        point: Entry point into the voxel hit.
        voxel_min: Minimum corner of the voxel hit.
        layer: Texture layer sampled (-1 unless status is HIT).
        st: Texel position sampled on the face.
    """

    status: ti.i32
    iterations: ti.i32
    color: vec3
    material: ti.i32
    axis: ti.i32
    point: vec3
    voxel_min: vec3
    layer: ti.i32
    st: vec2


@ti.func
def nearest_child(
    node: ti.i32,
    cube_min: vec3,
    edge: ti.i32,
    ray_origin: vec3,
    ray_dir: vec3,
    best_distance: ti.f32,
) -> ChildHit:
    """Find the nearest occupied child not yet visited.

    Args:
        node: Index of the node's 8-slot record in the octree buffer.
        cube_min: Minimum corner of the node's cube.
        edge: Edge length of the node's cube.
        ray_origin: The ray origin.
        ray_dir: The normalized ray direction.
        best_distance: Distance of the child last accepted at this level;
            only children strictly farther than this are eligible.

    Returns:
        The eligible child with the smallest distance, or octant NO_CHILD.
    """
    half = ti.cast(edge // 2, ti.f32)

    nearest_octant = NO_CHILD
    nearest_axis = 0
    nearest_point = ray_origin
    nearest_distance = 0.0

    for octant in ti.static(range(NODE_SIZE)):
        if octree[node + octant] != EMPTY:
            hit = intersect_aabc(ray_origin, ray_dir, child_origin(octant, cube_min, half), half)
            if hit.hit == 1 and hit.distance > best_distance:
                if nearest_octant == NO_CHILD or hit.distance < nearest_distance:
                    nearest_octant = octant
                    nearest_axis = hit.axis
                    nearest_point = hit.point
                    nearest_distance = hit.distance

    return ChildHit(
        octant=nearest_octant,
        axis=nearest_axis,
        point=nearest_point,
        distance=nearest_distance,
    )


@ti.func
def traverse(ray_origin: vec3, ray_dir: vec3) -> TraceResult:
    """Walk the uploaded octree and resolve the ray to a face color.

    Args:
        ray_origin: The ray origin (the eye for primary rays).
        ray_dir: The normalized ray direction.

    Returns:
        A TraceResult. The color is the background color (plus the
        diagnostic overlay when enabled) unless status is STATUS_HIT.
    """
    edge = octree[HEADER_EDGE]
    cube_min = vec3(
        ti.cast(octree[HEADER_MIN], ti.f32),
        ti.cast(octree[HEADER_MIN + 1], ti.f32),
        ti.cast(octree[HEADER_MIN + 2], ti.f32),
    )
    node = ROOT_INDEX
    level = 1

    best_distance = ti.Vector.zero(ti.f32, STACK_SIZE)
    parent_min_x = ti.Vector.zero(ti.f32, STACK_SIZE)
    parent_min_y = ti.Vector.zero(ti.f32, STACK_SIZE)
    parent_min_z = ti.Vector.zero(ti.f32, STACK_SIZE)
    parent_index = ti.Vector.zero(ti.i32, STACK_SIZE)
    for k in ti.static(range(STACK_SIZE)):
        best_distance[k] = NO_DISTANCE
    parent_min_x[1] = cube_min.x
    parent_min_y[1] = cube_min.y
    parent_min_z[1] = cube_min.z
    parent_index[1] = node

    status = STATUS_RUNNING
    iterations = 0
    color = _background_color[None]
    material = EMPTY
    hit_axis = 0
    hit_point = ray_origin
    voxel_min = cube_min
    layer = -1
    st = vec2(0.0, 0.0)

    while status == STATUS_RUNNING:
        iterations += 1
        child = nearest_child(node, cube_min, edge, ray_origin, ray_dir, best_distance[level])

        if child.octant == NO_CHILD:
            # Ascend
            cube_min = vec3(parent_min_x[level], parent_min_y[level], parent_min_z[level])
            node = parent_index[level]
            edge *= 2
            level -= 1
            if level == 0:
                status = STATUS_MISS
        elif edge == LEAF_PARENT_EDGE:
            material = octree[node + child.octant]
            hit_axis = child.axis
            hit_point = child.point
            voxel_min = child_origin(child.octant, cube_min, 1.0)
            sample = select_face(voxel_min, material, hit_axis, hit_point)
            layer = sample.layer
            st = sample.st
            color = fetch_texel(layer, st)
            status = STATUS_HIT
        elif level >= MAX_DEPTH:
            status = STATUS_OVERFLOW
        else:
            # Descend
            best_distance[level] = child.distance
            parent_min_x[level + 1] = cube_min.x
            parent_min_y[level + 1] = cube_min.y
            parent_min_z[level + 1] = cube_min.z
            parent_index[level + 1] = node
            cube_min = child_origin(child.octant, cube_min, ti.cast(edge // 2, ti.f32))
            node = octree[node + child.octant]
            edge //= 2
            level += 1

    if status != STATUS_HIT and _diagnostic_mode[None] == 1:
        heat = ti.cast(iterations, ti.f32) / _diagnostic_scale[None]
        color = tm.clamp(color + vec3(heat, heat, heat), 0.0, 1.0)

    return TraceResult(
        status=status,
        iterations=iterations,
        color=color,
        material=material,
        axis=hit_axis,
        point=hit_point,
        voxel_min=voxel_min,
        layer=layer,
        st=st,
    )


@ti.func
def trace(ray_origin: vec3, ray_dir: vec3) -> vec3:
    """Resolve a ray to a color: the face sample on a hit, else background."""
    return traverse(ray_origin, ray_dir).color
