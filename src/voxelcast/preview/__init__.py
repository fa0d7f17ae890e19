"""Preview module for output and visualization.

Components:
    display: Matplotlib-based static preview and ray status maps
    export: PNG export utilities
    interactive: Taichi GGUI fly-through window

Example:
    >>> from src.voxelcast.preview import save_png, show_preview
    >>> from src.voxelcast.core.renderer import OctreeRenderer
    >>>
    >>> renderer = OctreeRenderer(512, 512)
    >>> renderer.render()
    >>> show_preview(renderer)
    >>> save_png(renderer, "octree.png")
"""

from src.voxelcast.preview.display import apply_gamma, colorize_status, show_preview
from src.voxelcast.preview.export import (
    compute_rmse,
    image_to_uint8,
    save_png,
    save_png_from_array,
    save_status_png,
)
from src.voxelcast.preview.interactive import InteractivePreview

__all__ = [
    "InteractivePreview",
    "show_preview",
    "apply_gamma",
    "colorize_status",
    "save_png",
    "save_png_from_array",
    "save_status_png",
    "image_to_uint8",
    "compute_rmse",
]
