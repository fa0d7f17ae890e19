"""Unit tests for device-side octree storage.

Tests cover:
- Upload, read-back and clearing
- Header validation errors
- Child indices of reachable records
- Deep-root warning
"""

import logging

import numpy as np
import pytest


class TestUpload:
    """Tests for upload_octree and read-back."""

    def test_upload_and_read_back(self):
        """The uploaded buffer reads back unchanged."""
        from src.voxelcast.octree.builder import build_octree
        from src.voxelcast.octree.storage import (
            get_octree_length,
            get_octree_numpy,
            is_octree_loaded,
            upload_octree,
        )

        buffer = build_octree([((0, 0, 0), 1), ((3, 2, 1), 2)])
        upload_octree(buffer)

        assert is_octree_loaded()
        assert get_octree_length() == len(buffer)
        np.testing.assert_array_equal(get_octree_numpy(), buffer)

    def test_reupload_replaces_previous(self):
        """A second upload fully replaces the first, including stale tail entries."""
        from src.voxelcast.octree.builder import build_octree
        from src.voxelcast.octree.storage import get_octree_numpy, octree, upload_octree

        upload_octree(build_octree([((0, 0, 0), 1), ((7, 7, 7), 1)]))
        small = build_octree([((0, 0, 0), 9)])
        upload_octree(small)

        np.testing.assert_array_equal(get_octree_numpy(), small)
        assert octree[len(small)] == 0

    def test_clear_octree(self):
        """After clearing, no octree is reported as loaded."""
        from src.voxelcast.octree.builder import build_octree
        from src.voxelcast.octree.storage import clear_octree, is_octree_loaded, upload_octree

        upload_octree(build_octree([((0, 0, 0), 1)]))
        clear_octree()

        assert not is_octree_loaded()

    def test_read_back_without_upload_raises(self):
        """Reading back before any upload raises RuntimeError."""
        from src.voxelcast.octree.storage import get_octree_numpy

        with pytest.raises(RuntimeError, match="upload_octree"):
            get_octree_numpy()

    def test_deep_root_logs_warning(self, caplog):
        """A root deeper than MAX_DEPTH is accepted with a warning."""
        from src.voxelcast.octree.storage import upload_octree

        buffer = np.array([1 << 20, 0, 0, 0] + [4] * 8, dtype=np.int32)
        with caplog.at_level(logging.WARNING, logger="src.voxelcast.octree.storage"):
            upload_octree(buffer)

        assert "cut off" in caplog.text


class TestValidation:
    """Tests for validate_octree."""

    def test_rejects_2d_buffer(self):
        """Buffers must be one-dimensional."""
        from src.voxelcast.octree.storage import upload_octree

        with pytest.raises(ValueError, match="must be 1D"):
            upload_octree(np.zeros((3, 4), dtype=np.int32))

    def test_rejects_short_buffer(self):
        """A header without a full root record is rejected."""
        from src.voxelcast.octree.storage import upload_octree

        with pytest.raises(ValueError, match="at least 12"):
            upload_octree(np.array([2, 0, 0, 0, 1], dtype=np.int32))

    def test_rejects_oversized_buffer(self):
        """Buffers longer than the preallocated field are rejected."""
        from src.voxelcast.octree.storage import MAX_OCTREE_LENGTH, validate_octree

        buffer = np.zeros(MAX_OCTREE_LENGTH + 1, dtype=np.int32)
        buffer[0] = 2
        with pytest.raises(ValueError, match="exceeding the maximum"):
            validate_octree(buffer)

    @pytest.mark.parametrize("edge", [0, 1, 3, 6, -2])
    def test_rejects_bad_root_edge(self, edge):
        """The root edge must be a power of two of at least 2."""
        from src.voxelcast.octree.storage import upload_octree

        with pytest.raises(ValueError, match="power of two"):
            upload_octree(np.array([edge, 0, 0, 0] + [0] * 8, dtype=np.int32))

    def test_rejects_root_child_outside_buffer(self):
        """Interior root slots must index into the buffer."""
        from src.voxelcast.octree.storage import upload_octree

        buffer = np.array([4, 0, 0, 0, 0, 0, 0, 0, 0, 0, 99, 0], dtype=np.int32)
        with pytest.raises(ValueError, match="outside the buffer"):
            upload_octree(buffer)

    def test_leaf_root_slots_are_not_indices(self):
        """With a size-2 root the slots are materials and are not range checked."""
        from src.voxelcast.octree.storage import is_octree_loaded, upload_octree

        upload_octree(np.array([2, 0, 0, 0, 0, 0, 0, 0, 0, 0, 999, 0], dtype=np.int32))

        assert is_octree_loaded()

    @pytest.mark.parametrize("stray", [2_000_000_000, 13, 2, -5])
    def test_rejects_inner_child_outside_buffer(self, stray):
        """A stray index in a record below the root is rejected before upload."""
        from src.voxelcast.octree.storage import is_octree_loaded, upload_octree

        # Root edge 8 -> record at 12 (edge 4), whose octant 6 holds the stray index
        buffer = np.array([8, 0, 0, 0] + [0] * 6 + [12, 0] + [0] * 6 + [stray, 0], dtype=np.int32)

        with pytest.raises(ValueError, match="index 12 references a child record outside"):
            upload_octree(buffer)
        assert not is_octree_loaded()

    def test_accepts_built_octrees(self):
        """Every record index written by the builder lies inside the buffer."""
        from src.voxelcast.octree.builder import build_octree, random_voxels
        from src.voxelcast.octree.storage import validate_octree

        validate_octree(build_octree(random_voxels(16, density=0.3, seed=3)))

    def test_cyclic_buffer_passes(self):
        """A self-referencing root is walked once per level and accepted."""
        from src.voxelcast.octree.storage import validate_octree

        validate_octree(np.array([1 << 20, 0, 0, 0] + [4] * 8, dtype=np.int32))

    def test_rejected_buffer_never_reaches_traversal(self, single_voxel_scene):
        """A failed upload leaves the previous octree in place for rendering."""
        from src.voxelcast.core.renderer import trace_ray
        from src.voxelcast.core.traversal import STATUS_HIT
        from src.voxelcast.octree.storage import upload_octree

        bad = np.array([8, 0, 0, 0] + [0] * 6 + [12, 0] + [0] * 6 + [2_000_000_000, 0], dtype=np.int32)
        with pytest.raises(ValueError):
            upload_octree(bad)

        result = trace_ray((10.0, 0.5, 0.5), (-1.0, 0.0, 0.0))
        assert result["status"] == STATUS_HIT
