"""First-person fly camera that produces CameraInfo for each frame.

The camera keeps a position and a unit quaternion orientation. Mouse look
yaws about world down and then pitches about the camera's own left axis, so
horizontal look never rolls the view. Movement is continuous: a direction is
started, and elapsed time converts into distance at MOVEMENT_RATE units per
second. Forward, backward, left and right move relative to the current
orientation; up and down always move along the world Y axis.

Quaternions are stored as NumPy arrays (w, x, y, z).

Example:
    >>> import math
    >>> from src.voxelcast.camera.fly import FlyCamera, LookEvent, MoveDirection
    >>> camera = FlyCamera(pos=(0.0, 0.0, 0.0), fov=math.pi / 2)
    >>> camera.apply_look_event(LookEvent(right=math.pi, down=0.0))
    >>> camera.start_moving(MoveDirection.FORWARD)
    >>> camera.stop_moving(1.0)
    >>> camera.get_camera_info().eye  # moved 3 units towards +Z
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np
import numpy.typing as npt

from src.voxelcast.camera.pinhole import CameraInfo

FORWARD = (0.0, 0.0, -1.0)
BACKWARD = (0.0, 0.0, 1.0)
LEFT = (-1.0, 0.0, 0.0)
RIGHT = (1.0, 0.0, 0.0)
DOWN = (0.0, -1.0, 0.0)
UP = (0.0, 1.0, 0.0)

# Units travelled per second of movement
MOVEMENT_RATE = 3.0


class MoveDirection(Enum):
    """Directions the camera can move in."""

    FORWARD = "forward"
    BACKWARD = "backward"
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"


# (absolute, direction) per movement; absolute directions ignore orientation
_MOVEMENT = {
    MoveDirection.FORWARD: (False, FORWARD),
    MoveDirection.BACKWARD: (False, BACKWARD),
    MoveDirection.LEFT: (False, LEFT),
    MoveDirection.RIGHT: (False, RIGHT),
    MoveDirection.UP: (True, UP),
    MoveDirection.DOWN: (True, DOWN),
}


@dataclass
class LookEvent:
    """A mouse-look rotation.

    Attributes:
        right: Yaw angle in radians (positive turns right).
        down: Pitch angle in radians (positive looks down).
    """

    right: float
    down: float


# =============================================================================
# Quaternion Helpers
# =============================================================================


def quat_axis_angle(axis: tuple[float, float, float], angle: float) -> npt.NDArray[np.float64]:
    """Build the unit quaternion rotating by angle radians about a unit axis."""
    half = 0.5 * angle
    return np.concatenate(([np.cos(half)], np.sin(half) * np.asarray(axis, dtype=np.float64)))


def quat_mul(a: npt.NDArray[np.float64], b: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Hamilton product a * b (apply b first, then a)."""
    aw, av = a[0], a[1:]
    bw, bv = b[0], b[1:]
    w = aw * bw - np.dot(av, bv)
    v = aw * bv + bw * av + np.cross(av, bv)
    return np.concatenate(([w], v))


def quat_rotate(q: npt.NDArray[np.float64], vector: tuple[float, float, float]) -> npt.NDArray[np.float64]:
    """Rotate a vector by a unit quaternion."""
    v = np.asarray(vector, dtype=np.float64)
    u = q[1:]
    t = 2.0 * np.cross(u, v)
    return v + q[0] * t + np.cross(u, t)


# =============================================================================
# Fly Camera
# =============================================================================


class FlyCamera:
    """A free-flying camera driven by look and movement events.

    Attributes:
        position: Current eye position.
        fov: Vertical field of view in radians.
        moving: The direction currently being moved in, or None.
    """

    def __init__(self, pos: tuple[float, float, float], fov: float) -> None:
        self._pos = np.asarray(pos, dtype=np.float64)
        self._quat = np.array([1.0, 0.0, 0.0, 0.0])
        self._fov = fov
        self._dir: MoveDirection | None = None

    @property
    def position(self) -> tuple[float, float, float]:
        """Get the current eye position."""
        return (float(self._pos[0]), float(self._pos[1]), float(self._pos[2]))

    @property
    def fov(self) -> float:
        """Get the vertical field of view in radians."""
        return self._fov

    @property
    def moving(self) -> MoveDirection | None:
        """Get the direction currently being moved in."""
        return self._dir

    def forward(self) -> tuple[float, float, float]:
        """Get the unit view direction."""
        d = quat_rotate(self._quat, FORWARD)
        return (float(d[0]), float(d[1]), float(d[2]))

    def apply_look_event(self, look: LookEvent) -> None:
        """Rotate the view: yaw about world down, then pitch about the ear axis."""
        yaw = quat_axis_angle(DOWN, look.right)
        self._quat = quat_mul(yaw, self._quat)
        ear_axis = quat_rotate(self._quat, LEFT)
        pitch = quat_axis_angle(tuple(ear_axis), look.down)
        self._quat = quat_mul(pitch, self._quat)
        self._quat /= np.linalg.norm(self._quat)

    def start_moving(self, direction: MoveDirection) -> None:
        """Begin moving in a direction until stop_moving() is called.

        Raises:
            ValueError: If direction is not a MoveDirection.
        """
        if not isinstance(direction, MoveDirection):
            raise ValueError(f"Unknown movement direction: {direction!r}")
        self._dir = direction

    def update_position(self, seconds: float) -> None:
        """Advance the position by the movement made during the elapsed time."""
        if self._dir is None:
            return
        absolute, direction = _MOVEMENT[self._dir]
        movement = np.asarray(direction, dtype=np.float64) * seconds
        if absolute:
            self._move_absolute(movement)
        else:
            self._move_relative(movement)

    def stop_moving(self, seconds: float) -> None:
        """Apply the final stretch of movement and stop."""
        self.update_position(seconds)
        self._dir = None

    def get_camera_info(self) -> CameraInfo:
        """Get the eye, a target one unit ahead, and the field of view."""
        target = self._pos + quat_rotate(self._quat, FORWARD)
        return CameraInfo(
            eye=self.position,
            target=(float(target[0]), float(target[1]), float(target[2])),
            fov=self._fov,
        )

    def _move_relative(self, movement: npt.NDArray[np.float64]) -> None:
        self._move_absolute(quat_rotate(self._quat, tuple(movement)))

    def _move_absolute(self, movement: npt.NDArray[np.float64]) -> None:
        self._pos = self._pos + movement * MOVEMENT_RATE

    def __repr__(self) -> str:
        return f"FlyCamera(position={self.position}, forward={self.forward()}, fov={self._fov})"
