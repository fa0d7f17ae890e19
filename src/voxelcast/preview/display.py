"""Matplotlib-based preview of rendered frames.

Besides the color image, a frame carries a per-pixel ray status (hit, miss,
depth overflow). colorize_status() turns that into an image so that
malformed regions of an octree are easy to spot next to the render.

Example:
    >>> from src.voxelcast.preview.display import show_preview
    >>> from src.voxelcast.core.renderer import OctreeRenderer
    >>>
    >>> renderer = OctreeRenderer(512, 512)
    >>> renderer.render()
    >>> show_preview(renderer, show_status=True)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt

from src.voxelcast.core.traversal import STATUS_HIT, STATUS_MISS, STATUS_OVERFLOW

if TYPE_CHECKING:
    from src.voxelcast.core.renderer import OctreeRenderer

# Colors used by colorize_status(), keyed by ray status
STATUS_COLORS = {
    STATUS_MISS: (0.0, 0.0, 0.0),
    STATUS_HIT: (1.0, 1.0, 1.0),
    STATUS_OVERFLOW: (1.0, 0.0, 0.0),
}


def apply_gamma(
    image: npt.NDArray[np.float32],
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Apply gamma correction for display.

    Args:
        image: Image array of shape (H, W, 3) in [0, 1] range.
        gamma: Gamma value; 1.0 leaves the image unchanged.

    Returns:
        Gamma corrected image.
    """
    if gamma == 1.0:
        return image

    # Clamp to [0, 1] before gamma to avoid NaN from negative values
    image = np.clip(image, 0.0, 1.0)
    return np.power(image, 1.0 / gamma).astype(np.float32)


def colorize_status(status: npt.NDArray[np.integer]) -> npt.NDArray[np.float32]:
    """Map a (H, W) ray status array to an RGB image.

    Misses are black, hits white and depth overflows red.

    Raises:
        ValueError: If the array holds an unknown status value.
    """
    image = np.zeros((*status.shape, 3), dtype=np.float32)
    known = np.zeros(status.shape, dtype=bool)
    for value, color in STATUS_COLORS.items():
        mask = status == value
        image[mask] = color
        known |= mask
    if not np.all(known):
        unknown = np.unique(status[~known])
        raise ValueError(f"Unknown ray status values: {unknown.tolist()}")
    return image


def show_preview(
    renderer: OctreeRenderer,
    *,
    gamma: float = 1.0,
    show_status: bool = False,
    title: str | None = None,
    figsize: tuple[float, float] = (8, 8),
    block: bool = True,
) -> None:
    """Display the last rendered frame as a Matplotlib figure.

    Args:
        renderer: The OctreeRenderer whose frame is shown.
        gamma: Gamma correction value (default 1.0, textures are display-ready).
        show_status: Also show the ray status map beside the image.
        title: Custom title (default shows the image size and frame time).
        figsize: Figure size in inches (width, height).
        block: Whether to block execution until figure is closed.
    """
    import matplotlib.pyplot as plt

    display_image = apply_gamma(renderer.get_image_numpy(), gamma)

    if show_status:
        fig, axes = plt.subplots(1, 2, figsize=(figsize[0] * 2, figsize[1]))
        image_ax, status_ax = axes
        status_ax.imshow(colorize_status(renderer.get_status_numpy()))
        status_ax.set_title("Ray status (white=hit, red=overflow)")
        status_ax.axis("off")
    else:
        fig, image_ax = plt.subplots(1, 1, figsize=figsize)

    image_ax.imshow(display_image)
    image_ax.axis("off")

    if title is None:
        title = (
            f"{renderer.width}x{renderer.height} - frame {renderer.frame_count} "
            f"({renderer.last_frame_ms:.1f} ms)"
        )
    image_ax.set_title(title)

    plt.tight_layout()
    plt.show(block=block)
