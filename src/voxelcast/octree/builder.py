"""Host-side construction and serialization of the flat octree buffer.

The builder collects voxels (integer positions with a material id), grows a
power-of-two root cube around them and serializes the tree into the flat
integer layout described in layout.py. Node records are written depth
first, so a parent's record always precedes its children's.

Example:
    >>> from src.voxelcast.octree.builder import OctreeBuilder
    >>> builder = OctreeBuilder()
    >>> builder.add_voxel((0, 0, 0), material=5)
    >>> builder.add_voxel((3, 1, 2), material=2)
    >>> buffer = builder.build()
    >>> int(buffer[0])  # root edge length
    4
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import numpy.typing as npt

from src.voxelcast.octree.layout import (
    EMPTY,
    HEADER_LENGTH,
    LEAF_PARENT_EDGE,
    MAX_DEPTH,
    NODE_SIZE,
    ROOT_INDEX,
    octant_index,
)

logger = logging.getLogger(__name__)

Position = tuple[int, int, int]


@dataclass(frozen=True)
class Aabc:
    """An integer axis-aligned bounding cube.

    The cube covers origin[i] <= p[i] < origin[i] + size on every axis.

    Attributes:
        origin: Minimum corner of the cube.
        size: Edge length of the cube.
    """

    origin: Position
    size: int

    def contains(self, point: Position) -> bool:
        """Check whether a point lies inside the cube (max exclusive)."""
        for i in range(3):
            if point[i] < self.origin[i] or point[i] >= self.origin[i] + self.size:
                return False
        return True

    def contains_aabc(self, other: Aabc) -> bool:
        """Check whether another cube lies entirely inside this one."""
        for i in range(3):
            if other.origin[i] < self.origin[i]:
                return False
            if other.origin[i] + other.size > self.origin[i] + self.size:
                return False
        return True

    def expand_towards(self, target: Position) -> Aabc:
        """Double the cube, growing towards a point outside it.

        The new cube keeps this cube as one of its octants. On each axis
        where the target lies below the cube the origin moves down by the
        current size; on the other axes the cube grows upwards.

        Args:
            target: A point outside the cube.

        Returns:
            The doubled cube.

        Raises:
            ValueError: If the target is already inside the cube.
        """
        if self.contains(target):
            raise ValueError(f"Cannot expand {self} towards {target}: target is inside")
        origin = list(self.origin)
        for i in range(3):
            if target[i] < origin[i]:
                origin[i] -= self.size
        return Aabc(origin=(origin[0], origin[1], origin[2]), size=self.size * 2)

    def shrink_towards(self, target: Position) -> Aabc:
        """Halve the cube to the octant containing a point.

        Args:
            target: A point inside the cube.

        Returns:
            The child cube containing the target.

        Raises:
            ValueError: If the target is outside the cube.
        """
        if not self.contains(target):
            raise ValueError(f"Cannot shrink {self} towards {target}: target is outside")
        half = self.size // 2
        origin = list(self.origin)
        for i in range(3):
            if target[i] >= self.origin[i] + half:
                origin[i] += half
        return Aabc(origin=(origin[0], origin[1], origin[2]), size=half)


class OctreeBuilder:
    """Collects voxels and serializes them into a flat octree buffer.

    Attributes:
        voxel_count: Number of voxels added so far.
    """

    def __init__(self) -> None:
        self._voxels: dict[Position, int] = {}

    @property
    def voxel_count(self) -> int:
        """Get the number of voxels added so far."""
        return len(self._voxels)

    def add_voxel(self, pos: Iterable[int], material: int) -> None:
        """Add a single voxel.

        Args:
            pos: Integer voxel position (x, y, z).
            material: Material id, must be positive (0 marks empty slots).

        Raises:
            ValueError: If the material id is not positive or a voxel
                already occupies the position.
        """
        x, y, z = (int(c) for c in pos)
        key = (x, y, z)
        if material <= EMPTY:
            raise ValueError(f"Material id must be positive, got {material}")
        if key in self._voxels:
            raise ValueError(f"Voxel at {key} already exists")
        self._voxels[key] = int(material)

    def add_voxels(self, voxels: Iterable[tuple[Iterable[int], int]]) -> None:
        """Add several (position, material) pairs."""
        for pos, material in voxels:
            self.add_voxel(pos, material)

    def bounds(self) -> Aabc:
        """Compute the root cube enclosing every voxel.

        The cube starts as the first voxel and is doubled towards each voxel
        that falls outside it. The result is at least LEAF_PARENT_EDGE wide.

        Returns:
            The root cube.
        """
        if not self._voxels:
            return Aabc(origin=(0, 0, 0), size=LEAF_PARENT_EDGE)

        root: Aabc | None = None
        for pos in self._voxels:
            if root is None:
                root = Aabc(origin=pos, size=1)
            while not root.contains(pos):
                root = root.expand_towards(pos)

        assert root is not None
        if root.size < LEAF_PARENT_EDGE:
            root = Aabc(origin=root.origin, size=LEAF_PARENT_EDGE)
        return root

    def build(self) -> npt.NDArray[np.int32]:
        """Serialize the voxels into the flat octree buffer.

        Returns:
            1D int32 array: header followed by node records.

        Raises:
            ValueError: If the tree would be deeper than MAX_DEPTH levels.
        """
        root = self.bounds()
        depth = root.size.bit_length() - 1
        if depth > MAX_DEPTH:
            raise ValueError(
                f"Voxels span {root.size} units, which needs {depth} levels "
                f"(maximum supported is {MAX_DEPTH})"
            )

        buffer = [root.size, *root.origin]
        assert len(buffer) == HEADER_LENGTH == ROOT_INDEX
        buffer.extend([EMPTY] * NODE_SIZE)
        self._fill(buffer, ROOT_INDEX, root, list(self._voxels.items()))

        node_count = (len(buffer) - HEADER_LENGTH) // NODE_SIZE
        logger.info(
            "Built octree: %d voxels, %d nodes, root edge %d at %s",
            len(self._voxels),
            node_count,
            root.size,
            root.origin,
        )
        return np.asarray(buffer, dtype=np.int32)

    def _fill(
        self,
        buffer: list[int],
        index: int,
        cube: Aabc,
        voxels: list[tuple[Position, int]],
    ) -> None:
        """Write the node record at index and recurse into its children."""
        half = cube.size // 2
        groups: dict[int, list[tuple[Position, int]]] = {}
        for pos, material in voxels:
            child = cube.shrink_towards(pos)
            octant = octant_index(child.origin, cube.origin, half)
            groups.setdefault(octant, []).append((pos, material))

        for octant in sorted(groups):
            members = groups[octant]
            if cube.size == LEAF_PARENT_EDGE:
                buffer[index + octant] = members[0][1]
                continue
            child_index = len(buffer)
            buffer[index + octant] = child_index
            buffer.extend([EMPTY] * NODE_SIZE)
            self._fill(buffer, child_index, cube.shrink_towards(members[0][0]), members)


def build_octree(voxels: Iterable[tuple[Iterable[int], int]]) -> npt.NDArray[np.int32]:
    """Build a flat octree buffer from (position, material) pairs.

    Args:
        voxels: Iterable of ((x, y, z), material_id).

    Returns:
        The serialized octree buffer.
    """
    builder = OctreeBuilder()
    builder.add_voxels(voxels)
    return builder.build()


def random_voxels(
    extent: int = 50,
    density: float = 1.0 / 12.0,
    material: int = 5,
    seed: int | None = None,
) -> list[tuple[Position, int]]:
    """Generate a random voxel cloud for demos and benchmarks.

    Every integer cell in [-extent, extent)^3 is filled independently with
    the given probability.

    Args:
        extent: Half the side length of the filled region.
        density: Probability that a cell holds a voxel.
        material: Material id assigned to every voxel.
        seed: Optional seed for reproducible scenes.

    Returns:
        List of ((x, y, z), material) pairs.
    """
    rng = np.random.default_rng(seed)
    side = 2 * extent
    occupied = np.argwhere(rng.random((side, side, side)) < density) - extent
    return [((int(x), int(y), int(z)), material) for x, y, z in occupied]


def save_octree(path: str | Path, buffer: npt.NDArray[np.int32]) -> None:
    """Save a flat octree buffer as a .npy file."""
    np.save(Path(path), np.asarray(buffer, dtype=np.int32))


def load_octree(path: str | Path) -> npt.NDArray[np.int32]:
    """Load a flat octree buffer saved with save_octree.

    Raises:
        ValueError: If the file does not hold a 1D integer array.
    """
    buffer = np.load(Path(path))
    if buffer.ndim != 1 or not np.issubdtype(buffer.dtype, np.integer):
        raise ValueError(
            f"Octree file {path} must hold a 1D integer array, "
            f"got {buffer.dtype} with shape {buffer.shape}"
        )
    return buffer.astype(np.int32)
