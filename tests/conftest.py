"""Pytest configuration for voxelcast tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_device_state():
    """Reset every uploaded buffer and render setting around each test.

    The octree, textures, camera and render settings live in module-level
    Taichi fields shared by all tests.
    """
    # Import here so that Taichi is initialized before fields are allocated
    from src.voxelcast.camera.pinhole import clear_camera
    from src.voxelcast.core.renderer import clear_render_target
    from src.voxelcast.core.traversal import set_background_color, set_diagnostic_mode
    from src.voxelcast.octree.storage import clear_octree
    from src.voxelcast.textures.sampler import clear_textures

    def _clear_all():
        clear_octree()
        clear_textures()
        clear_camera()
        clear_render_target()
        set_background_color((0.0, 0.0, 0.0))
        set_diagnostic_mode(False)

    _clear_all()
    yield
    _clear_all()


@pytest.fixture
def single_voxel_scene():
    """Upload a one-voxel octree (material 5 at the origin) with palette textures.

    Returns:
        The face resolution of the uploaded textures.
    """
    from src.voxelcast.octree.builder import build_octree
    from src.voxelcast.octree.storage import upload_octree
    from src.voxelcast.textures.sampler import make_palette_textures, upload_textures

    resolution = 16
    upload_octree(build_octree([((0, 0, 0), 5)]))
    upload_textures(make_palette_textures(resolution=resolution))
    return resolution
