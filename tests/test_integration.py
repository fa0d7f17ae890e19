"""Integration tests for the end-to-end rendering pipeline.

This module tests the complete pipeline from a voxel list through the
serialized octree, device upload, traversal and image export. It checks
that rendered geometry sits exactly where the voxels were placed.

Tests are designed to be fast (small scenes, low resolution).

Note: Imports are done inside test methods to avoid Taichi initialization issues.
The conftest.py fixture initializes Taichi before tests run.
"""

import argparse

import numpy as np
import pytest


def _upload_random_scene(extent=6, density=0.15, seed=5):
    """Build, upload and return the voxel list of a random scene."""
    from src.voxelcast.octree.builder import build_octree, random_voxels
    from src.voxelcast.octree.storage import upload_octree
    from src.voxelcast.textures.sampler import make_palette_textures, upload_textures

    voxels = random_voxels(extent, density, seed=seed)
    upload_octree(build_octree(voxels))
    upload_textures(make_palette_textures(resolution=8))
    return voxels


class TestVoxelPlacement:
    """Rays must find the voxels at the positions they were added."""

    def test_columns_from_above(self):
        """A ray down each column hits the topmost voxel of that column."""
        from src.voxelcast.core.renderer import trace_ray
        from src.voxelcast.core.traversal import STATUS_HIT, STATUS_MISS
        from src.voxelcast.textures.sampler import FACE_TOP

        voxels = _upload_random_scene()
        occupied = {position: material for position, material in voxels}

        for x in range(-6, 6):
            for z in range(-6, 6):
                column = [p for p in occupied if p[0] == x and p[2] == z]
                result = trace_ray((x + 0.5, 100.0, z + 0.5), (0.0, -1.0, 0.0))
                if not column:
                    assert result["status"] == STATUS_MISS, (x, z)
                    continue
                top = max(column, key=lambda p: p[1])
                assert result["status"] == STATUS_HIT, (x, z)
                assert result["voxel_min"] == pytest.approx(top), (x, z)
                assert result["material"] == occupied[top]
                assert result["layer"] % 6 == FACE_TOP

    def test_rows_from_the_side(self):
        """A ray along +x hits the leftmost voxel of its row on the left face."""
        from src.voxelcast.core.renderer import trace_ray
        from src.voxelcast.core.traversal import STATUS_HIT
        from src.voxelcast.textures.sampler import FACE_LEFT

        voxels = _upload_random_scene(seed=9)
        occupied = {position for position, _ in voxels}

        checked = 0
        for y in range(-6, 6):
            row = [p for p in occupied if p[1] == y and p[2] == 0]
            if not row:
                continue
            first = min(row, key=lambda p: p[0])
            result = trace_ray((-100.0, y + 0.5, 0.5), (1.0, 0.0, 0.0))
            assert result["status"] == STATUS_HIT
            assert result["voxel_min"] == pytest.approx(first)
            assert result["layer"] % 6 == FACE_LEFT
            checked += 1
        assert checked > 0


class TestPipeline:
    """End-to-end rendering and export."""

    def test_random_scene_renders(self, tmp_path):
        """A random scene renders with hits, no overflow and a valid PNG."""
        from PIL import Image

        from src.voxelcast.config import RenderConfig
        from src.voxelcast.core.renderer import OctreeRenderer, count_hit_pixels
        from src.voxelcast.preview.export import save_png

        _upload_random_scene(extent=8, density=0.1, seed=3)
        renderer = OctreeRenderer.from_config(
            RenderConfig(width=40, height=24, eye=(0.0, 0.0, 30.0), target=(0.0, 0.0, 0.0))
        )

        overflow = renderer.render(strict=True)
        path = tmp_path / "scene.png"
        save_png(renderer, path)

        assert overflow == 0
        assert 0 < count_hit_pixels() < 40 * 24
        with Image.open(path) as img:
            assert img.size == (40, 24)

    def test_rendering_is_deterministic(self):
        """Two renders of the same scene are identical."""
        from src.voxelcast.camera.pinhole import CameraInfo
        from src.voxelcast.core.renderer import OctreeRenderer
        from src.voxelcast.preview.export import compute_rmse

        _upload_random_scene()
        renderer = OctreeRenderer(24, 24)
        renderer.set_camera(CameraInfo(eye=(20.0, 15.0, 25.0), target=(0.0, 0.0, 0.0), fov=0.8))

        renderer.render()
        first = renderer.get_image_numpy()
        renderer.render()
        second = renderer.get_image_numpy()

        assert compute_rmse(first, second) == 0.0

    def test_saved_octree_renders_identically(self, tmp_path):
        """An octree loaded from .npy renders like the original buffer."""
        from src.voxelcast.camera.pinhole import CameraInfo
        from src.voxelcast.core.renderer import OctreeRenderer
        from src.voxelcast.octree.builder import load_octree, save_octree
        from src.voxelcast.octree.storage import get_octree_numpy, upload_octree

        _upload_random_scene()
        renderer = OctreeRenderer(16, 16)
        renderer.set_camera(CameraInfo(eye=(0.0, 20.0, 20.0), target=(0.0, 0.0, 0.0), fov=1.0))
        renderer.render()
        original = renderer.get_image_numpy()

        path = tmp_path / "scene.npy"
        save_octree(path, get_octree_numpy())
        upload_octree(load_octree(path))
        renderer.render()

        np.testing.assert_array_equal(renderer.get_image_numpy(), original)


class TestRenderExample:
    """The command-line example drives the same pipeline."""

    def test_render_octree_example(self, tmp_path):
        """render_octree writes the image, status map and octree buffer."""
        from examples.render_octree import render_octree

        args = argparse.Namespace(
            width=24,
            height=16,
            output=str(tmp_path / "out.png"),
            octree=None,
            save_octree=str(tmp_path / "scene.npy"),
            textures=None,
            extent=6,
            density=0.1,
            seed=2,
            eye=(0.0, 0.0, 30.0),
            target=(0.0, 0.0, 0.0),
            fov=60.0,
            diagnostic=True,
            strict=True,
            status_output=str(tmp_path / "status.png"),
            quiet=True,
        )

        output = render_octree(args)

        assert output.exists()
        assert (tmp_path / "status.png").exists()
        assert (tmp_path / "scene.npy").exists()
