"""Octree module: flat buffer layout, host-side builder and device storage.

Components:
    layout: Header offsets, the octant offset table and child placement
    builder: Builds the flat buffer from (position, material) voxels
    storage: Device field holding the uploaded buffer
"""

from .builder import (
    Aabc,
    OctreeBuilder,
    build_octree,
    load_octree,
    random_voxels,
    save_octree,
)
from .layout import (
    EMPTY,
    LEAF_PARENT_EDGE,
    MAX_DEPTH,
    NODE_SIZE,
    OCTANT_OFFSETS,
    ROOT_INDEX,
    child_origin,
    octant_index,
    octant_origin,
)
from .storage import clear_octree, get_octree_numpy, is_octree_loaded, upload_octree

__all__ = [
    "Aabc",
    "OctreeBuilder",
    "build_octree",
    "random_voxels",
    "save_octree",
    "load_octree",
    "EMPTY",
    "LEAF_PARENT_EDGE",
    "MAX_DEPTH",
    "NODE_SIZE",
    "OCTANT_OFFSETS",
    "ROOT_INDEX",
    "child_origin",
    "octant_index",
    "octant_origin",
    "upload_octree",
    "clear_octree",
    "is_octree_loaded",
    "get_octree_numpy",
]
