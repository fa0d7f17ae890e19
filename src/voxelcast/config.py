"""Render configuration shared by the renderer and the example scripts.

Compile-time limits (MAX_DEPTH, MAX_IMAGE_WIDTH, MAX_OCTREE_LENGTH, ...)
live next to the fields they size. This module only holds the per-run
settings a caller may change between frames.
"""

import math
from dataclasses import dataclass

from src.voxelcast.camera.pinhole import CameraInfo

SKY_BLUE = (0.53, 0.81, 0.92)


@dataclass
class RenderConfig:
    """Settings for one render.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        fov: Vertical field of view in radians.
        eye: Camera position.
        target: Point the camera looks at.
        face_resolution: Texels per face edge for generated palette textures.
        background_color: Color of rays that hit nothing.
        diagnostic_mode: Brighten missed rays by their traversal cost.
        diagnostic_scale: Iteration count mapped to full brightness.
        strict: Raise instead of warning when rays exceed the depth bound.
    """

    width: int = 512
    height: int = 512
    fov: float = math.pi / 2
    eye: tuple[float, float, float] = (0.0, 0.0, 80.0)
    target: tuple[float, float, float] = (0.0, 0.0, 0.0)
    face_resolution: int = 16
    background_color: tuple[float, float, float] = SKY_BLUE
    diagnostic_mode: bool = False
    diagnostic_scale: float = 64.0
    strict: bool = False

    @property
    def aspect_ratio(self) -> float:
        """Get width divided by height."""
        return self.width / self.height

    def camera(self) -> CameraInfo:
        """Get the camera described by this configuration."""
        return CameraInfo(eye=self.eye, target=self.target, fov=self.fov)

    def validate(self) -> None:
        """Check the settings for values no render can use.

        Raises:
            ValueError: If a size, angle or scale is out of range.
        """
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Image size must be positive, got {self.width}x{self.height}")
        if not 0.0 < self.fov < math.pi:
            raise ValueError(f"Field of view must be in (0, pi) radians, got {self.fov}")
        if self.eye == self.target:
            raise ValueError(f"Camera eye and target coincide at {self.eye}")
        if self.face_resolution <= 0:
            raise ValueError(f"Face resolution must be positive, got {self.face_resolution}")
        if self.diagnostic_scale <= 0:
            raise ValueError(f"Diagnostic scale must be positive, got {self.diagnostic_scale}")
        if any(not 0.0 <= c <= 1.0 for c in self.background_color):
            raise ValueError(
                f"Background color channels must be in [0, 1], got {self.background_color}"
            )
