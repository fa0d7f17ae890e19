"""Image export utilities for rendered frames.

Supported formats:
    - PNG (8-bit via Pillow)

Example:
    >>> from src.voxelcast.preview.export import save_png
    >>> from src.voxelcast.core.renderer import OctreeRenderer
    >>>
    >>> renderer = OctreeRenderer(512, 512)
    >>> renderer.render()
    >>> save_png(renderer, "octree.png")
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from src.voxelcast.preview.display import apply_gamma, colorize_status

if TYPE_CHECKING:
    from src.voxelcast.core.renderer import OctreeRenderer


def image_to_uint8(
    image: npt.NDArray[np.float32],
    *,
    gamma: float = 1.0,
) -> npt.NDArray[np.uint8]:
    """Convert a float image in [0, 1] to uint8 for display or export.

    Args:
        image: Image array of shape (H, W, 3).
        gamma: Gamma correction value (default 1.0).

    Returns:
        8-bit image array of shape (H, W, 3).
    """
    processed = np.clip(apply_gamma(image, gamma), 0.0, 1.0)
    return (processed * 255).astype(np.uint8)


def save_png_from_array(
    image: npt.NDArray[np.float32],
    filepath: str | Path,
    *,
    gamma: float = 1.0,
) -> None:
    """Save a float (H, W, 3) array as an 8-bit PNG file."""
    pil_image = PILImage.fromarray(image_to_uint8(image, gamma=gamma), mode="RGB")
    pil_image.save(filepath)


def save_png(
    renderer: OctreeRenderer,
    filepath: str | Path,
    *,
    gamma: float = 1.0,
) -> None:
    """Save the renderer's last frame as a PNG file.

    Args:
        renderer: The OctreeRenderer instance to save.
        filepath: Output file path (should end in .png).
        gamma: Gamma correction value (default 1.0).
    """
    save_png_from_array(renderer.get_image_numpy(), filepath, gamma=gamma)


def save_status_png(renderer: OctreeRenderer, filepath: str | Path) -> None:
    """Save the last frame's ray status map (see colorize_status) as a PNG."""
    save_png_from_array(colorize_status(renderer.get_status_numpy()), filepath)


def compute_rmse(
    image_a: npt.NDArray[np.floating[npt.NBitBase]],
    image_b: npt.NDArray[np.floating[npt.NBitBase]],
) -> float:
    """Compute root mean squared error between two images.

    Raises:
        ValueError: If image shapes don't match.
    """
    if image_a.shape != image_b.shape:
        raise ValueError(f"Image shapes must match: {image_a.shape} vs {image_b.shape}")

    diff = image_a.astype(np.float64) - image_b.astype(np.float64)
    return float(np.sqrt(np.mean(diff**2)))
