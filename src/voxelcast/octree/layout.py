"""Flat octree buffer layout shared by the builder and the traverser.

Buffer layout (32-bit integers):

    [0]        root edge length (power of two, in voxel units, >= 2)
    [1..3]     root cube minimum corner (x, y, z)
    [4..11]    root node record
    [...]      further 8-slot node records

A node record holds one slot per octant. A slot is 0 when the octant is
empty. Otherwise it is the index of the child's node record when the node's
edge length is greater than 2, or a material id when the node's edge length
is exactly 2 (its children are single voxels).

Index 0 holds the header, so a zero slot can never be mistaken for a valid
child record.

The octant order is a fixed lookup table. It is not a Morton code and must
not be "simplified" into one: serialized octrees depend on it.
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

HEADER_EDGE = 0
HEADER_MIN = 1
HEADER_LENGTH = 4
ROOT_INDEX = 4
NODE_SIZE = 8

# Slot value marking an empty octant
EMPTY = 0

# Node edge length whose children are voxels (slots hold material ids)
LEAF_PARENT_EDGE = 2

# Maximum number of node levels a ray may descend. Sizes the per-ray
# traversal stack and bounds descent on malformed (e.g. cyclic) buffers.
MAX_DEPTH = 16

# Octant index -> offset of the child's minimum corner, in units of half the
# parent's edge length.
OCTANT_OFFSETS = (
    (1, 1, 1),
    (1, 1, 0),
    (0, 1, 0),
    (0, 1, 1),
    (1, 0, 1),
    (1, 0, 0),
    (0, 0, 0),
    (0, 0, 1),
)

# Row-list form of the table for building a Taichi matrix in kernel scope
_OFFSET_ROWS = [list(offset) for offset in OCTANT_OFFSETS]


def octant_origin(
    octant: int,
    parent_min: tuple[int, int, int],
    half_edge: int,
) -> tuple[int, int, int]:
    """Minimum corner of a child cube, computed on the host.

    Args:
        octant: Octant index in [0, 8).
        parent_min: Minimum corner of the parent cube.
        half_edge: Half of the parent's edge length.

    Returns:
        The child's minimum corner.

    Raises:
        ValueError: If octant is out of range.
    """
    if not 0 <= octant < NODE_SIZE:
        raise ValueError(f"Octant index {octant} out of range [0, {NODE_SIZE})")
    offset = OCTANT_OFFSETS[octant]
    return (
        parent_min[0] + offset[0] * half_edge,
        parent_min[1] + offset[1] * half_edge,
        parent_min[2] + offset[2] * half_edge,
    )


def octant_index(
    child_min: tuple[int, int, int],
    parent_min: tuple[int, int, int],
    half_edge: int,
) -> int:
    """Slot index of a child cube within its parent (inverse of the table).

    Args:
        child_min: Minimum corner of the child cube.
        parent_min: Minimum corner of the parent cube.
        half_edge: Half of the parent's edge length.

    Returns:
        The octant index whose offset maps parent_min onto child_min.

    Raises:
        ValueError: If the child is not aligned to one of the parent's octants.
    """
    for octant in range(NODE_SIZE):
        if octant_origin(octant, parent_min, half_edge) == tuple(child_min):
            return octant
    raise ValueError(
        f"Child at {tuple(child_min)} is misaligned with parent at "
        f"{tuple(parent_min)} (half edge {half_edge})"
    )


def is_power_of_two(value: int) -> bool:
    """Check whether value is a positive power of two."""
    return value > 0 and (value & (value - 1)) == 0


@ti.func
def child_origin(octant: ti.i32, parent_min: vec3, half_edge: ti.f32) -> vec3:
    """Minimum corner of a child cube inside a Taichi kernel.

    Args:
        octant: Octant index in [0, 8).
        parent_min: Minimum corner of the parent cube.
        half_edge: Half of the parent's edge length.

    Returns:
        parent_min plus the octant's table offset scaled by half_edge.
    """
    offsets = ti.Matrix(_OFFSET_ROWS, dt=ti.f32)
    offset = vec3(offsets[octant, 0], offsets[octant, 1], offsets[octant, 2])
    return parent_min + offset * half_edge
