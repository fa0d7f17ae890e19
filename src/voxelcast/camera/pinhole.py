"""Pinhole camera model for primary ray generation.

This module turns camera parameters (eye, target, vertical field of view)
into one normalized ray per pixel. The camera builds an orthonormal basis
(u, v, w) from the view parameters with world up fixed to +Y:
- w: points from target toward eye (opposite view direction)
- u: points right in the image plane
- v: points up in the image plane

The basis and viewport are computed once per frame with NumPy and stored in
Taichi fields; get_ray() then reads them inside kernels.

Example:
    >>> import math
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.voxelcast.camera.pinhole import CameraInfo, setup_camera, get_ray
    >>>
    >>> camera = CameraInfo(eye=(0.0, 0.0, 3.0), target=(0.0, 0.0, 0.0), fov=math.pi / 2)
    >>> setup_camera(camera, aspect_ratio=16.0 / 9.0)
    >>>
    >>> @ti.kernel
    ... def render():
    ...     ray = get_ray(0.5, 0.5)  # Ray through image center
"""

import math
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from src.voxelcast.core.ray import Ray, make_ray, vec3

# World up direction used to orient the camera
WORLD_UP = (0.0, 1.0, 0.0)

# Screen-up direction used instead when looking straight up or down
FALLBACK_UP = (0.0, 0.0, -1.0)

# =============================================================================
# Camera Data Structures
# =============================================================================


@dataclass
class CameraInfo:
    """Camera parameters consumed by ray generation.

    Attributes:
        eye: Camera position in world space (x, y, z). Every primary ray
            starts here.
        target: Point the camera is looking at in world space (x, y, z).
        fov: Vertical field of view in radians.
    """

    eye: tuple[float, float, float]
    target: tuple[float, float, float]
    fov: float


# =============================================================================
# Taichi Fields for Camera State (GPU-accessible)
# =============================================================================

_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())

# Orthonormal basis vectors
_camera_u = ti.Vector.field(3, dtype=ti.f32, shape=())  # Right
_camera_v = ti.Vector.field(3, dtype=ti.f32, shape=())  # Up
_camera_w = ti.Vector.field(3, dtype=ti.f32, shape=())  # Backward (opposite view)

# Viewport vectors for ray computation
_viewport_horizontal = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_vertical = ti.Vector.field(3, dtype=ti.f32, shape=())
_lower_left_corner = ti.Vector.field(3, dtype=ti.f32, shape=())

_camera_initialized = ti.field(dtype=ti.i32, shape=())


# =============================================================================
# Camera Setup (Python-side, called once per camera configuration)
# =============================================================================


def setup_camera(camera: CameraInfo, aspect_ratio: float = 1.0) -> None:
    """Initialize camera state from camera parameters.

    The viewport is a virtual image plane at unit distance in front of the
    eye. Ray directions are computed by interpolating across it.

    Args:
        camera: Eye, target and vertical field of view.
        aspect_ratio: Width divided by height of the output image.

    Raises:
        ValueError: If eye and target coincide, the field of view is
            outside (0, pi), or the aspect ratio is not positive.
    """
    if not 0.0 < camera.fov < math.pi:
        raise ValueError(f"Field of view must be in (0, pi) radians, got {camera.fov}")
    if aspect_ratio <= 0.0:
        raise ValueError(f"Aspect ratio must be positive, got {aspect_ratio}")

    h = math.tan(camera.fov / 2.0)
    viewport_height = 2.0 * h
    viewport_width = aspect_ratio * viewport_height

    eye = np.array(camera.eye, dtype=np.float32)
    target = np.array(camera.target, dtype=np.float32)
    vup = np.array(WORLD_UP, dtype=np.float32)

    # w points from target toward eye (backward)
    w = eye - target
    w_norm = np.linalg.norm(w)
    if w_norm == 0.0:
        raise ValueError(f"Camera eye and target coincide at {camera.eye}")
    w = w / w_norm

    # u points right (perpendicular to w and vup)
    u = np.cross(vup, w)
    u_norm = np.linalg.norm(u)
    if u_norm < 1e-6:
        u = np.cross(np.array(FALLBACK_UP, dtype=np.float32), w)
        u_norm = np.linalg.norm(u)
    u = u / u_norm

    v = np.cross(w, u)

    _camera_origin[None] = eye.tolist()
    _camera_u[None] = u.tolist()
    _camera_v[None] = v.tolist()
    _camera_w[None] = w.tolist()

    horizontal = viewport_width * u
    vertical = viewport_height * v

    # Origin - w (move forward) - horizontal/2 (left) - vertical/2 (down)
    lower_left = eye - w - horizontal / 2.0 - vertical / 2.0

    _viewport_horizontal[None] = horizontal.tolist()
    _viewport_vertical[None] = vertical.tolist()
    _lower_left_corner[None] = lower_left.tolist()
    _camera_initialized[None] = 1


def is_camera_initialized() -> bool:
    """Check whether setup_camera() has been called."""
    return bool(_camera_initialized[None])


def clear_camera() -> None:
    """Mark the camera as not set up."""
    _camera_initialized[None] = 0


# =============================================================================
# Ray Generation (Taichi-compatible, GPU-callable)
# =============================================================================


@ti.func
def get_ray(u: ti.f32, v: ti.f32) -> Ray:
    """Generate a ray through normalized image coordinates (u, v).

    The coordinates are normalized:
    - u = 0: left edge of image, u = 1: right edge
    - v = 0: bottom edge of image, v = 1: top edge

    Args:
        u: Horizontal coordinate in [0, 1] (left to right).
        v: Vertical coordinate in [0, 1] (bottom to top).

    Returns:
        A Ray from the eye with a normalized direction toward the specified
        point on the image plane.
    """
    point_on_viewport = (
        _lower_left_corner[None] + u * _viewport_horizontal[None] + v * _viewport_vertical[None]
    )

    origin = _camera_origin[None]
    direction = tm.normalize(point_on_viewport - origin)

    return make_ray(origin, direction)


@ti.func
def get_pixel_ray(pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32) -> Ray:
    """Generate the ray through the center of a pixel.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).
        width: Image width in pixels.
        height: Image height in pixels.

    Returns:
        The ray through the pixel center.
    """
    u = (ti.cast(pixel_i, ti.f32) + 0.5) / ti.cast(width, ti.f32)
    v = (ti.cast(pixel_j, ti.f32) + 0.5) / ti.cast(height, ti.f32)
    return get_ray(u, v)


@ti.func
def get_camera_origin() -> vec3:
    """Get the camera origin (eye position) in world space."""
    return _camera_origin[None]


# =============================================================================
# Utility Functions
# =============================================================================


def get_camera_info() -> dict[str, tuple[float, float, float]]:
    """Get current camera state for debugging.

    Returns:
        Dictionary with origin, u, v, w, horizontal, vertical, lower_left.
    """
    fields = {
        "origin": _camera_origin,
        "u": _camera_u,
        "v": _camera_v,
        "w": _camera_w,
        "horizontal": _viewport_horizontal,
        "vertical": _viewport_vertical,
        "lower_left": _lower_left_corner,
    }
    info = {}
    for name, field in fields.items():
        vec = field[None]
        info[name] = (float(vec[0]), float(vec[1]), float(vec[2]))
    return info
