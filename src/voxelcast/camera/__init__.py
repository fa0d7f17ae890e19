"""Camera module for view and primary ray generation.

Components:
    pinhole: Look-at pinhole camera producing one ray per pixel
    fly: Fly-through camera turning look and movement input into CameraInfo

Ray generation uses normalized image coordinates:
    u in [0, 1]: left to right across image
    v in [0, 1]: bottom to top across image
"""

from .fly import FlyCamera, LookEvent, MoveDirection
from .pinhole import (
    CameraInfo,
    get_camera_info,
    get_camera_origin,
    get_pixel_ray,
    get_ray,
    setup_camera,
)

__all__ = [
    "CameraInfo",
    "setup_camera",
    "get_ray",
    "get_pixel_ray",
    "get_camera_origin",
    "get_camera_info",
    "FlyCamera",
    "LookEvent",
    "MoveDirection",
]
