"""Device-side storage for the flat octree buffer.

The octree lives in a preallocated Taichi field so that kernels reading it
never need recompiling when a different octree is uploaded. The buffer is
read-only while a frame renders; uploads happen between frames from Python.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.voxelcast.octree.builder import build_octree
    >>> from src.voxelcast.octree.storage import upload_octree
    >>> upload_octree(build_octree([((0, 0, 0), 5)]))
"""

import logging

import numpy as np
import numpy.typing as npt
import taichi as ti

from src.voxelcast.octree.layout import (
    EMPTY,
    HEADER_EDGE,
    HEADER_LENGTH,
    LEAF_PARENT_EDGE,
    MAX_DEPTH,
    NODE_SIZE,
    ROOT_INDEX,
    is_power_of_two,
)

logger = logging.getLogger(__name__)

# Maximum number of integers in an uploaded buffer (preallocated, 16 MiB)
MAX_OCTREE_LENGTH = 1 << 22

octree = ti.field(dtype=ti.i32, shape=MAX_OCTREE_LENGTH)
_octree_length = ti.field(dtype=ti.i32, shape=())


def clear_octree() -> None:
    """Forget the uploaded octree.

    The field contents are left in place but the buffer is reported as not
    loaded until the next upload.
    """
    _octree_length[None] = 0


def is_octree_loaded() -> bool:
    """Check whether an octree buffer has been uploaded."""
    return int(_octree_length[None]) > 0


def get_octree_length() -> int:
    """Get the length of the uploaded buffer (0 if none)."""
    return int(_octree_length[None])


def validate_octree(buffer: npt.NDArray[np.integer]) -> None:
    """Check the header, the size and the reachable child indices of a buffer.

    Interior records are walked from the root down to the MAX_DEPTH levels
    a ray can reach. Every non-empty slot of a record with edge length above
    LEAF_PARENT_EDGE must index a whole record inside the buffer. Records
    are keyed by (index, edge) so a cyclic buffer is walked once per level
    and passes; the traversal depth bound cuts it off instead.

    Args:
        buffer: 1D integer array in the flat octree layout.

    Raises:
        ValueError: If the buffer is not 1D, is shorter than one header and
            one node record, exceeds MAX_OCTREE_LENGTH, the root edge is
            not a power of two of at least LEAF_PARENT_EDGE, or a reachable
            record references a child record outside the buffer.
    """
    if buffer.ndim != 1:
        raise ValueError(f"Octree buffer must be 1D, got shape {buffer.shape}")
    if len(buffer) < HEADER_LENGTH + NODE_SIZE:
        raise ValueError(
            f"Octree buffer has {len(buffer)} entries; a header and root node "
            f"need at least {HEADER_LENGTH + NODE_SIZE}"
        )
    if len(buffer) > MAX_OCTREE_LENGTH:
        raise ValueError(
            f"Octree buffer has {len(buffer)} entries, exceeding the maximum "
            f"supported ({MAX_OCTREE_LENGTH})"
        )
    edge = int(buffer[HEADER_EDGE])
    if edge < LEAF_PARENT_EDGE or not is_power_of_two(edge):
        raise ValueError(
            f"Root edge length must be a power of two >= {LEAF_PARENT_EDGE}, got {edge}"
        )

    last_record = len(buffer) - NODE_SIZE
    visited = set()
    # (record index, edge length, level); the root is level 1
    stack = [(ROOT_INDEX, edge, 1)]
    while stack:
        node, node_edge, level = stack.pop()
        if node_edge <= LEAF_PARENT_EDGE or level >= MAX_DEPTH:
            continue
        if (node, node_edge) in visited:
            continue
        visited.add((node, node_edge))

        slots = buffer[node : node + NODE_SIZE]
        children = slots[slots != EMPTY]
        bad = (children < ROOT_INDEX) | (children > last_record)
        if np.any(bad):
            raise ValueError(
                f"Node record at index {node} references a child record outside "
                f"the buffer ({int(children[bad][0])}; valid range is "
                f"{ROOT_INDEX}..{last_record})"
            )
        for child in children:
            stack.append((int(child), node_edge // 2, level + 1))


def upload_octree(buffer: npt.NDArray[np.integer]) -> None:
    """Copy an octree buffer into the device field.

    Args:
        buffer: 1D integer array in the flat octree layout.

    Raises:
        ValueError: If the buffer fails validate_octree().
    """
    buffer = np.asarray(buffer)
    validate_octree(buffer)

    edge = int(buffer[HEADER_EDGE])
    depth = edge.bit_length() - 1
    if depth > MAX_DEPTH:
        logger.warning(
            "Octree root edge %d needs %d levels; rays will be cut off at %d",
            edge,
            depth,
            MAX_DEPTH,
        )

    padded = np.full(MAX_OCTREE_LENGTH, EMPTY, dtype=np.int32)
    padded[: len(buffer)] = buffer
    octree.from_numpy(padded)
    _octree_length[None] = len(buffer)
    logger.debug("Uploaded octree buffer: %d entries, root edge %d", len(buffer), edge)


def get_octree_numpy() -> npt.NDArray[np.int32]:
    """Read back the uploaded buffer.

    Raises:
        RuntimeError: If no octree has been uploaded.
    """
    if not is_octree_loaded():
        raise RuntimeError("No octree uploaded. Call upload_octree() first.")
    return octree.to_numpy()[: get_octree_length()]
