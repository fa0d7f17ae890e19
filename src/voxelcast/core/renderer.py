"""Frame rendering: one primary ray per pixel, resolved by octree traversal.

The render target is a preallocated color buffer plus a per-pixel status
buffer recording how each ray ended (hit, miss or depth overflow). A frame
is produced by a single kernel dispatched over TILE_SIZE x TILE_SIZE pixel
tiles; every pixel is independent, so tiles run fully in parallel. Pixels of
partial edge tiles that fall outside the image are skipped.

Before rendering, three pieces of state must be in place:
    - an octree buffer (octree.storage.upload_octree)
    - a texture array (textures.sampler.upload_textures)
    - a camera (camera.pinhole.setup_camera, or OctreeRenderer.set_camera)

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.voxelcast.core.renderer import OctreeRenderer
    >>> from src.voxelcast.camera.pinhole import CameraInfo
    >>> from src.voxelcast.octree.builder import build_octree, random_voxels
    >>> from src.voxelcast.octree.storage import upload_octree
    >>> from src.voxelcast.textures.sampler import make_palette_textures, upload_textures
    >>>
    >>> upload_octree(build_octree(random_voxels(seed=1)))
    >>> upload_textures(make_palette_textures())
    >>> renderer = OctreeRenderer(512, 512)
    >>> renderer.set_camera(CameraInfo(eye=(0.0, 0.0, 80.0), target=(0.0, 0.0, 0.0), fov=1.57))
    >>> renderer.render()
    >>> renderer.save_image("octree.png")
"""

import logging
import time

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm
from PIL import Image as PILImage

from src.voxelcast.camera.pinhole import (
    CameraInfo,
    get_pixel_ray,
    is_camera_initialized,
    setup_camera,
)
from src.voxelcast.config import RenderConfig
from src.voxelcast.core.traversal import (
    STATUS_HIT,
    STATUS_MISS,
    STATUS_OVERFLOW,
    TraceResult,
    set_background_color,
    set_diagnostic_mode,
    traverse,
)
from src.voxelcast.octree.storage import is_octree_loaded
from src.voxelcast.textures.sampler import is_textures_loaded

logger = logging.getLogger(__name__)

# Type alias for 3D vectors
vec3 = tm.vec3

__all__ = [
    "MAX_IMAGE_HEIGHT",
    "MAX_IMAGE_WIDTH",
    "OctreeIntegrityError",
    "OctreeRenderer",
    "TILE_SIZE",
    "clear_render_target",
    "count_hit_pixels",
    "count_overflow_pixels",
    "get_image",
    "get_image_dimensions",
    "get_normalized_image_numpy",
    "get_status_numpy",
    "render_frame",
    "set_background_color",
    "set_diagnostic_mode",
    "setup_render_target",
    "trace_pixel",
    "trace_ray",
]

# Pixels per tile edge for the frame kernel
TILE_SIZE = 8


class OctreeIntegrityError(RuntimeError):
    """Raised when rays exceeded the traversal depth bound in strict mode."""


# =============================================================================
# Render Target (Image Buffer)
# =============================================================================

# Maximum supported image dimensions (preallocated to avoid kernel recompilation)
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())

_color_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# How each pixel's ray ended (STATUS_HIT / STATUS_MISS / STATUS_OVERFLOW)
_status_buffer = ti.field(dtype=ti.i32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

_render_target_initialized = ti.field(dtype=ti.i32, shape=())

# Single-ray probe used by trace_pixel() and trace_ray()
_probe = TraceResult.field(shape=())


def setup_render_target(width: int, height: int) -> None:
    """Initialize the render target buffers.

    Args:
        width: Image width in pixels (max MAX_IMAGE_WIDTH).
        height: Image height in pixels (max MAX_IMAGE_HEIGHT).

    Raises:
        ValueError: If dimensions are not positive or exceed the maximum
            supported size.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1
    clear_render_target()


def clear_render_target() -> None:
    """Clear the color buffer to black and mark every pixel as missed."""
    _color_buffer.fill(0.0)
    _status_buffer.fill(STATUS_MISS)


def get_image_dimensions() -> tuple[int, int]:
    """Get the current render target dimensions as (width, height)."""
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


def _check_scene_ready() -> None:
    """Raise if any input a frame reads has not been provided."""
    _check_render_target_initialized()
    if not is_octree_loaded():
        raise RuntimeError("No octree uploaded. Call upload_octree() first.")
    if not is_textures_loaded():
        raise RuntimeError("No textures uploaded. Call upload_textures() first.")
    if not is_camera_initialized():
        raise RuntimeError("Camera not set up. Call setup_camera() first.")


def get_image() -> "ti.MatrixField":
    """Get the full preallocated color buffer field.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()
    return _color_buffer


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.kernel
def _render_tiles(width: ti.i32, height: ti.i32):
    """Trace one ray per pixel, dispatched as TILE_SIZE x TILE_SIZE tiles."""
    tiles_x = (width + TILE_SIZE - 1) // TILE_SIZE
    tiles_y = (height + TILE_SIZE - 1) // TILE_SIZE
    for tx, ty, dx, dy in ti.ndrange(tiles_x, tiles_y, TILE_SIZE, TILE_SIZE):
        i = tx * TILE_SIZE + dx
        j = ty * TILE_SIZE + dy
        if i < width and j < height:
            ray = get_pixel_ray(i, j, width, height)
            result = traverse(ray.origin, ray.direction)
            _color_buffer[i, j] = result.color
            _status_buffer[i, j] = result.status


@ti.kernel
def _count_status(width: ti.i32, height: ti.i32, status: ti.i32) -> ti.i32:
    count = 0
    for i, j in ti.ndrange(width, height):
        if _status_buffer[i, j] == status:
            count += 1
    return count


@ti.kernel
def _trace_single_pixel(pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32):
    ray = get_pixel_ray(pixel_i, pixel_j, width, height)
    _probe[None] = traverse(ray.origin, ray.direction)


@ti.kernel
def _trace_single_ray(origin: vec3, direction: vec3):
    _probe[None] = traverse(origin, tm.normalize(direction))


def _read_probe() -> dict[str, object]:
    """Copy the probe result into plain Python values."""
    color = _probe.color[None]
    point = _probe.point[None]
    voxel_min = _probe.voxel_min[None]
    st = _probe.st[None]
    return {
        "status": int(_probe.status[None]),
        "iterations": int(_probe.iterations[None]),
        "color": (float(color[0]), float(color[1]), float(color[2])),
        "material": int(_probe.material[None]),
        "axis": int(_probe.axis[None]),
        "point": (float(point[0]), float(point[1]), float(point[2])),
        "voxel_min": (float(voxel_min[0]), float(voxel_min[1]), float(voxel_min[2])),
        "layer": int(_probe.layer[None]),
        "st": (float(st[0]), float(st[1])),
    }


# =============================================================================
# Public Rendering API
# =============================================================================


def render_frame() -> None:
    """Render one frame into the color and status buffers.

    Raises:
        RuntimeError: If the render target, octree, textures or camera have
            not been set up.
    """
    _check_scene_ready()
    width, height = get_image_dimensions()
    start = time.perf_counter()
    _render_tiles(width, height)
    ti.sync()
    logger.debug(
        "Rendered %dx%d frame in %.2f ms", width, height, (time.perf_counter() - start) * 1e3
    )


def count_overflow_pixels() -> int:
    """Count pixels of the last frame whose ray exceeded the depth bound."""
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    return int(_count_status(width, height, STATUS_OVERFLOW))


def count_hit_pixels() -> int:
    """Count pixels of the last frame whose ray hit a voxel."""
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    return int(_count_status(width, height, STATUS_HIT))


def trace_pixel(pixel_i: int, pixel_j: int) -> dict[str, object]:
    """Trace the primary ray of one pixel and report the full outcome.

    Intended for debugging and tests; render_frame() traces all pixels.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).

    Returns:
        Dictionary with the TraceResult members as Python values.

    Raises:
        RuntimeError: If the render target, octree, textures or camera have
            not been set up.
    """
    _check_scene_ready()
    width, height = get_image_dimensions()
    _trace_single_pixel(pixel_i, pixel_j, width, height)
    return _read_probe()


def trace_ray(
    origin: tuple[float, float, float], direction: tuple[float, float, float]
) -> dict[str, object]:
    """Trace an arbitrary ray (direction need not be normalized).

    Raises:
        ValueError: If the direction is zero.
        RuntimeError: If no octree or textures have been uploaded.
    """
    if not any(direction):
        raise ValueError("Ray direction must be non-zero")
    if not is_octree_loaded():
        raise RuntimeError("No octree uploaded. Call upload_octree() first.")
    if not is_textures_loaded():
        raise RuntimeError("No textures uploaded. Call upload_textures() first.")
    _trace_single_ray(vec3(*origin), vec3(*direction))
    return _read_probe()


def get_status_numpy() -> npt.NDArray[np.int32]:
    """Get the per-pixel ray status in image layout (height, width).

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    status = _status_buffer.to_numpy()[:width, :height]
    return np.flipud(np.transpose(status, (1, 0)))


def get_normalized_image_numpy() -> npt.NDArray[np.float32]:
    """Get the rendered image as a NumPy array of shape (height, width, 3).

    Values are clamped to [0, 1].

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()

    image = _color_buffer.to_numpy()[:width, :height, :]

    # Transpose from (width, height, 3) to (height, width, 3) for standard image format
    image = np.transpose(image, (1, 0, 2))

    # Flip vertically (Taichi uses bottom-left origin, images use top-left)
    image = np.flipud(image)

    return np.clip(image, 0.0, 1.0).astype(np.float32)


# =============================================================================
# Renderer
# =============================================================================


class OctreeRenderer:
    """Renders frames of the uploaded octree from a camera.

    The renderer owns the image size and delegates to the module-level
    buffers (which are Taichi fields).

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        frame_count: Number of frames rendered so far.
        last_frame_ms: Wall time of the most recent frame in milliseconds.
    """

    def __init__(self, width: int, height: int) -> None:
        """Initialize the renderer.

        Args:
            width: Image width in pixels (max 2048).
            height: Image height in pixels (max 2048).

        Raises:
            ValueError: If dimensions are out of range.
        """
        self._width = width
        self._height = height
        self._frame_count = 0
        self._last_frame_ms = 0.0
        setup_render_target(width, height)

    @classmethod
    def from_config(cls, config: RenderConfig) -> "OctreeRenderer":
        """Create a renderer and apply a configuration's settings.

        The camera and traversal settings are applied; the octree and
        textures must still be uploaded by the caller.

        Raises:
            ValueError: If the configuration is invalid.
        """
        config.validate()
        renderer = cls(config.width, config.height)
        set_background_color(config.background_color)
        set_diagnostic_mode(config.diagnostic_mode, config.diagnostic_scale)
        renderer.set_camera(config.camera())
        return renderer

    @property
    def width(self) -> int:
        """Get the image width."""
        return self._width

    @property
    def height(self) -> int:
        """Get the image height."""
        return self._height

    @property
    def frame_count(self) -> int:
        """Get the number of frames rendered so far."""
        return self._frame_count

    @property
    def last_frame_ms(self) -> float:
        """Get the wall time of the most recent frame in milliseconds."""
        return self._last_frame_ms

    def set_camera(self, camera: CameraInfo) -> None:
        """Point the camera, using this renderer's aspect ratio."""
        setup_camera(camera, aspect_ratio=self._width / self._height)

    def resize(self, width: int, height: int) -> None:
        """Resize the render target.

        The camera must be set again afterwards so the aspect ratio matches.

        Raises:
            ValueError: If dimensions are out of range.
        """
        self._width = width
        self._height = height
        setup_render_target(width, height)

    def render(self, strict: bool = False) -> int:
        """Render one frame.

        Args:
            strict: Raise instead of warning when any ray exceeded the
                traversal depth bound.

        Returns:
            The number of pixels whose ray exceeded the depth bound.

        Raises:
            RuntimeError: If the octree, textures or camera are not set up.
            OctreeIntegrityError: If strict is set and any ray overflowed.
        """
        start = time.perf_counter()
        render_frame()
        self._last_frame_ms = (time.perf_counter() - start) * 1e3
        self._frame_count += 1

        overflow = count_overflow_pixels()
        if overflow > 0:
            message = (
                f"{overflow} pixels exceeded the traversal depth bound; "
                f"the octree buffer is malformed or too deep"
            )
            if strict:
                raise OctreeIntegrityError(message)
            logger.warning(message)
        return overflow

    def trace_pixel(self, pixel_i: int, pixel_j: int) -> dict[str, object]:
        """Trace a single pixel's ray (see module-level trace_pixel)."""
        return trace_pixel(pixel_i, pixel_j)

    def get_status_numpy(self) -> npt.NDArray[np.int32]:
        """Get the per-pixel ray status of the last frame, shape (height, width)."""
        return get_status_numpy()

    def get_image_numpy(self, gamma: float = 1.0) -> npt.NDArray[np.float32]:
        """Get the rendered image as a NumPy array of shape (height, width, 3).

        Args:
            gamma: Gamma correction value. Default 1.0 (the texture colors
                are stored display-ready).
        """
        image = get_normalized_image_numpy()
        if gamma != 1.0:
            image = np.power(image, 1.0 / gamma)
        return image

    def get_image_uint8(self, gamma: float = 1.0) -> npt.NDArray[np.uint8]:
        """Get the rendered image as an 8-bit array of shape (height, width, 3)."""
        image = self.get_image_numpy(gamma=gamma)
        return (image * 255).astype(np.uint8)

    def save_image(self, filepath: str, gamma: float = 1.0) -> None:
        """Save the rendered image to a file (format from the extension)."""
        pil_image = PILImage.fromarray(self.get_image_uint8(gamma=gamma), mode="RGB")
        pil_image.save(filepath)

    def __repr__(self) -> str:
        """Return a string representation of the renderer state."""
        return (
            f"OctreeRenderer(width={self.width}, height={self.height}, "
            f"frames={self.frame_count})"
        )
