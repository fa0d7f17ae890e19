"""Unit tests for octree traversal.

Tests cover:
- Near-to-far child visitation through repeated nearest_child calls
- Hits, misses and iteration counts of the full walk
- The depth bound on malformed (cyclic) buffers
- Background color and the diagnostic overlay
"""

import math

import numpy as np
import pytest
import taichi as ti

# Root of edge 4 whose octants 1, 5 and 6 point at one empty record
THREE_CHILD_BUFFER = np.array(
    [4, 0, 0, 0, 0, 12, 0, 0, 0, 12, 12, 0] + [0] * 8,
    dtype=np.int32,
)

# Direction (1, 0.4, 0) normalized, travelling in the z = 1 plane
SLANTED_NORM = math.sqrt(1.16)
SLANTED_DIR = (1.0 / SLANTED_NORM, 0.4 / SLANTED_NORM, 0.0)


def _traverse(origin, direction):
    """Run traverse in a kernel and return the TraceResult fields as a dict."""
    from src.voxelcast.core.traversal import TraceResult, traverse, vec3

    result = TraceResult.field(shape=())

    @ti.kernel
    def test_kernel(o: vec3, d: vec3):
        result[None] = traverse(o, d)

    test_kernel(vec3(*origin), vec3(*direction))
    return {
        "status": int(result.status[None]),
        "iterations": int(result.iterations[None]),
        "color": result.color[None].to_numpy(),
        "material": int(result.material[None]),
        "axis": int(result.axis[None]),
        "point": result.point[None].to_numpy(),
        "voxel_min": result.voxel_min[None].to_numpy(),
        "layer": int(result.layer[None]),
        "st": result.st[None].to_numpy(),
    }


class TestNearestChild:
    """Tests for nearest_child."""

    def test_children_visited_near_to_far(self):
        """Feeding back the accepted distance yields each child once, in order."""
        from src.voxelcast.core.traversal import NO_CHILD, NO_DISTANCE, nearest_child, vec3
        from src.voxelcast.octree.storage import upload_octree

        upload_octree(THREE_CHILD_BUFFER)
        octants = ti.field(dtype=ti.i32, shape=4)
        distances = ti.field(dtype=ti.f32, shape=4)

        @ti.kernel
        def test_kernel(o: vec3, d: vec3):
            best = NO_DISTANCE
            for step in ti.static(range(4)):
                child = nearest_child(4, vec3(0.0, 0.0, 0.0), 4, o, d, best)
                octants[step] = child.octant
                distances[step] = child.distance
                if child.octant != NO_CHILD:
                    best = child.distance

        test_kernel(vec3(-1.0, 0.5, 1.0), vec3(*SLANTED_DIR))

        assert [octants[k] for k in range(4)] == [6, 5, 1, NO_CHILD]
        assert distances[0] == pytest.approx(1.16, rel=1e-4)
        assert distances[1] == pytest.approx(9.0 * 1.16, rel=1e-4)
        assert distances[2] == pytest.approx(14.0625 * 1.16, rel=1e-4)

    def test_empty_slots_are_skipped(self):
        """A ray through only empty octants finds no child."""
        from src.voxelcast.core.traversal import NO_CHILD, NO_DISTANCE, nearest_child, vec3
        from src.voxelcast.octree.storage import upload_octree

        upload_octree(THREE_CHILD_BUFFER)
        octant = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            # Travels through the z >= 2 half, where every slot is empty
            octant[None] = nearest_child(
                4, vec3(0.0), 4, vec3(-1.0, 1.0, 3.0), vec3(1.0, 0.0, 0.0), NO_DISTANCE
            ).octant

        test_kernel()

        assert octant[None] == NO_CHILD


class TestTraverse:
    """Tests for the full traversal."""

    def test_hit_single_voxel(self, single_voxel_scene):
        """A ray along -x strikes the right face of the voxel at its center."""
        from src.voxelcast.core.traversal import STATUS_HIT
        from src.voxelcast.textures.sampler import DEFAULT_PALETTE, PALETTE_FACE_SHADES

        result = _traverse((10.0, 0.5, 0.5), (-1.0, 0.0, 0.0))
        half = single_voxel_scene / 2

        assert result["status"] == STATUS_HIT
        assert result["material"] == 5
        assert result["axis"] == 0
        assert result["layer"] == 5 * 6 + 2
        np.testing.assert_allclose(result["point"], (1.0, 0.5, 0.5), atol=1e-6)
        np.testing.assert_allclose(result["voxel_min"], (0.0, 0.0, 0.0))
        np.testing.assert_allclose(result["st"], (half, half), atol=1e-4)
        expected = np.array(DEFAULT_PALETTE[5]) * PALETTE_FACE_SHADES[2]
        np.testing.assert_allclose(result["color"], expected, rtol=1e-5)

    def test_hit_top_face(self, single_voxel_scene):
        """A ray falling straight down strikes the top face."""
        from src.voxelcast.core.traversal import STATUS_HIT
        from src.voxelcast.textures.sampler import FACE_TOP

        result = _traverse((0.5, 6.0, 0.5), (0.0, -1.0, 0.0))

        assert result["status"] == STATUS_HIT
        assert result["axis"] == 1
        assert result["layer"] == 5 * 6 + FACE_TOP

    def test_miss_returns_background(self, single_voxel_scene):
        """A ray beside the octree misses and returns the background color."""
        from src.voxelcast.core.traversal import STATUS_MISS, set_background_color

        set_background_color((0.1, 0.2, 0.3))
        result = _traverse((10.0, 5.0, 0.5), (-1.0, 0.0, 0.0))

        assert result["status"] == STATUS_MISS
        assert result["material"] == 0
        assert result["layer"] == -1
        np.testing.assert_allclose(result["color"], (0.1, 0.2, 0.3), rtol=1e-6)

    def test_miss_through_empty_children(self):
        """Every occupied child is visited and left before the walk misses."""
        from src.voxelcast.core.traversal import STATUS_MISS
        from src.voxelcast.octree.storage import upload_octree
        from src.voxelcast.textures.sampler import make_palette_textures, upload_textures

        upload_octree(THREE_CHILD_BUFFER)
        upload_textures(make_palette_textures(resolution=4))

        result = _traverse((-1.0, 0.5, 1.0), SLANTED_DIR)

        # Root, then (descend, ascend) for three children, then the final ascent
        assert result["status"] == STATUS_MISS
        assert result["iterations"] == 7

    def test_nearest_voxel_wins(self):
        """Of two voxels on the ray, the nearer one is reported."""
        from src.voxelcast.core.traversal import STATUS_HIT
        from src.voxelcast.octree.builder import build_octree
        from src.voxelcast.octree.storage import upload_octree
        from src.voxelcast.textures.sampler import make_palette_textures, upload_textures

        upload_octree(build_octree([((0, 0, 0), 1), ((3, 0, 0), 2)]))
        upload_textures(make_palette_textures(resolution=4))

        from_right = _traverse((10.0, 0.5, 0.5), (-1.0, 0.0, 0.0))
        from_left = _traverse((-10.0, 0.5, 0.5), (1.0, 0.0, 0.0))

        assert from_right["status"] == STATUS_HIT
        assert from_right["material"] == 2
        np.testing.assert_allclose(from_right["voxel_min"], (3.0, 0.0, 0.0))
        assert from_left["material"] == 1
        np.testing.assert_allclose(from_left["point"], (0.0, 0.5, 0.5), atol=1e-6)

    def test_origin_inside_voxel(self, single_voxel_scene):
        """A ray starting inside a voxel hits it at its own origin."""
        from src.voxelcast.core.traversal import STATUS_HIT

        result = _traverse((0.5, 0.5, 0.5), (0.0, 0.0, 1.0))

        assert result["status"] == STATUS_HIT
        assert result["material"] == 5
        np.testing.assert_allclose(result["point"], (0.5, 0.5, 0.5), atol=1e-6)

    def test_cyclic_buffer_overflows(self):
        """A self-referencing root is cut off at MAX_DEPTH levels."""
        from src.voxelcast.core.traversal import STATUS_OVERFLOW
        from src.voxelcast.octree.layout import MAX_DEPTH
        from src.voxelcast.octree.storage import upload_octree
        from src.voxelcast.textures.sampler import make_palette_textures, upload_textures

        edge = 1 << 20
        upload_octree(np.array([edge, 0, 0, 0] + [4] * 8, dtype=np.int32))
        upload_textures(make_palette_textures(resolution=4))

        inside = float(edge) - 0.5
        result = _traverse((inside, inside, inside), (0.0, 0.0, -1.0))

        assert result["status"] == STATUS_OVERFLOW
        assert result["iterations"] == MAX_DEPTH


class TestRenderSettings:
    """Tests for the background and diagnostic settings."""

    def test_diagnostic_overlay_on_miss(self, single_voxel_scene):
        """Missed rays brighten by iterations / scale when the overlay is on."""
        from src.voxelcast.core.traversal import (
            STATUS_MISS,
            set_background_color,
            set_diagnostic_mode,
        )

        set_background_color((0.2, 0.2, 0.2))
        set_diagnostic_mode(True, scale=4.0)
        result = _traverse((10.0, 5.0, 0.5), (-1.0, 0.0, 0.0))

        assert result["status"] == STATUS_MISS
        assert result["iterations"] == 1
        np.testing.assert_allclose(result["color"], (0.45, 0.45, 0.45), rtol=1e-5)

    def test_diagnostic_overlay_skips_hits(self, single_voxel_scene):
        """Hit colors are unaffected by the overlay."""
        from src.voxelcast.core.traversal import set_diagnostic_mode
        from src.voxelcast.textures.sampler import DEFAULT_PALETTE, PALETTE_FACE_SHADES

        set_diagnostic_mode(True, scale=1.0)
        result = _traverse((10.0, 0.5, 0.5), (-1.0, 0.0, 0.0))

        expected = np.array(DEFAULT_PALETTE[5]) * PALETTE_FACE_SHADES[2]
        np.testing.assert_allclose(result["color"], expected, rtol=1e-5)

    def test_diagnostic_scale_must_be_positive(self):
        """A non-positive scale raises ValueError."""
        from src.voxelcast.core.traversal import set_diagnostic_mode

        with pytest.raises(ValueError, match="must be positive"):
            set_diagnostic_mode(True, scale=0.0)

    def test_get_render_settings(self):
        """Settings read back as plain Python values."""
        from src.voxelcast.core.traversal import (
            get_render_settings,
            set_background_color,
            set_diagnostic_mode,
        )

        set_background_color((0.5, 0.25, 1.0))
        set_diagnostic_mode(True, scale=32.0)
        settings = get_render_settings()

        assert settings["background_color"] == pytest.approx((0.5, 0.25, 1.0))
        assert settings["diagnostic_mode"] is True
        assert settings["diagnostic_scale"] == 32.0
