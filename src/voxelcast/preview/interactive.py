"""Interactive fly-through preview using Taichi GGUI.

The window re-renders the octree every frame from a FlyCamera driven by the
keyboard and mouse:

    W / S           move forward / backward
    A / D           strafe left / right
    Space / Shift   move up / down (world axis)
    left drag       look around
    P               export the current frame to a timestamped PNG
    Escape          close the window

Only one movement direction is active at a time, as with the camera itself;
the most recently pressed key wins and releasing it stops the camera.

Example:
    >>> import math
    >>> from src.voxelcast.camera.fly import FlyCamera
    >>> from src.voxelcast.preview.interactive import InteractivePreview
    >>>
    >>> camera = FlyCamera(pos=(0.0, 0.0, 80.0), fov=math.pi / 2)
    >>> preview = InteractivePreview(640, 480, camera)
    >>> preview.run()  # Blocks until the window is closed
"""

import logging
import math
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any

import numpy as np
import numpy.typing as npt
import taichi as ti

from src.voxelcast.camera.fly import FlyCamera, LookEvent, MoveDirection

logger = logging.getLogger(__name__)

# Key name -> movement started while the key is held
KEY_BINDINGS = {
    "w": MoveDirection.FORWARD,
    "s": MoveDirection.BACKWARD,
    "a": MoveDirection.LEFT,
    "d": MoveDirection.RIGHT,
    ti.ui.SPACE: MoveDirection.UP,
    ti.ui.SHIFT: MoveDirection.DOWN,
}

EXPORT_KEY = "p"

# Radians turned by dragging across the full window width (or height)
LOOK_RADIANS_PER_WINDOW = math.pi


# Lazy kernel holder - kernel is created on first use after Taichi is initialized
_copy_field_kernel: Any = None


def _get_copy_field_kernel() -> Any:
    """Get or create the field copy kernel."""
    global _copy_field_kernel
    if _copy_field_kernel is None:

        @ti.kernel
        def _kernel(src: ti.template(), dst: ti.template()):
            for i, j in dst:
                dst[i, j] = src[i, j]

        _copy_field_kernel = _kernel
    return _copy_field_kernel


class InteractivePreview:
    """Fly-through preview window.

    The window itself is created lazily on first use, so an instance can be
    built (and its input handling exercised) without a display.

    Attributes:
        width: Window width in pixels.
        height: Window height in pixels.
        camera: The FlyCamera steered by the user.
        display_image: Taichi field holding the image shown on screen.
        export_dir: Directory where exported PNGs are written.
    """

    def __init__(
        self,
        width: int,
        height: int,
        camera: FlyCamera,
        *,
        title: str = "voxelcast",
        export_dir: str | Path = ".",
    ) -> None:
        self.width = width
        self.height = height
        self.camera = camera
        self.export_dir = Path(export_dir)
        self._title = title
        self._held_key: str | None = None
        self._last_cursor: tuple[float, float] | None = None
        self._renderer: Any = None

        self._window: ti.ui.Window | None = None
        self._canvas: ti.ui.Canvas | None = None

        # Shape is (width, height) for Taichi field, RGB values stored as vec3
        self.display_image = ti.Vector.field(3, dtype=ti.f32, shape=(width, height))

    def _initialize_window(self) -> None:
        if self._window is not None:
            return
        self._window = ti.ui.Window(name=self._title, res=(self.width, self.height), vsync=True)
        self._canvas = self._window.get_canvas()

    @property
    def window(self) -> ti.ui.Window:
        """Get the Taichi GGUI window, initializing if needed."""
        self._initialize_window()
        assert self._window is not None
        return self._window

    @property
    def canvas(self) -> ti.ui.Canvas:
        """Get the canvas for rendering."""
        self._initialize_window()
        assert self._canvas is not None
        return self._canvas

    # =========================================================================
    # Display
    # =========================================================================

    def update_image(self, image: npt.NDArray[np.float32]) -> None:
        """Update the display image from a (height, width, 3) array.

        Raises:
            ValueError: If image shape doesn't match (height, width, 3).
        """
        expected_shape = (self.height, self.width, 3)
        if image.shape != expected_shape:
            raise ValueError(f"Image shape {image.shape} doesn't match expected {expected_shape}")

        # NumPy images are (height, width, channels) with row 0 at the top
        image_transposed = np.ascontiguousarray(np.transpose(np.flipud(image), (1, 0, 2)))
        self.display_image.from_numpy(image_transposed.astype(np.float32))

    def update_image_from_field(self, field: "ti.MatrixField") -> None:
        """Copy the active region of a (width, height) color field without a host round trip."""
        _get_copy_field_kernel()(field, self.display_image)

    def is_running(self) -> bool:
        """Check if the window is still open."""
        return self.window.running

    def show_frame(self) -> None:
        """Present the current display image."""
        self.canvas.set_image(self.display_image)
        self.window.show()

    def close(self) -> None:
        """Close the preview window."""
        if self._window is not None:
            self._window.running = False

    @staticmethod
    def is_display_available() -> bool:
        """Check if a display is available for GUI rendering."""
        display = os.environ.get("DISPLAY")
        wayland = os.environ.get("WAYLAND_DISPLAY")

        if os.name == "nt":
            return True

        # On macOS, display is always available if not in SSH
        if os.uname().sysname == "Darwin":
            return not (os.environ.get("SSH_CONNECTION") and not display)

        return bool(display or wayland)

    # =========================================================================
    # Input Handling
    # =========================================================================

    def handle_key(self, key: str, pressed: bool) -> None:
        """Apply a key press or release to the camera.

        Movement accrued so far must already have been applied with
        camera.update_position(); starting or stopping adds no distance.
        """
        if pressed and key == EXPORT_KEY:
            self.export_png()
            return

        direction = KEY_BINDINGS.get(key)
        if direction is None:
            return
        if pressed:
            self._held_key = key
            self.camera.start_moving(direction)
        elif key == self._held_key:
            self._held_key = None
            self.camera.stop_moving(0.0)

    def handle_drag(self, dx: float, dy: float) -> None:
        """Turn the camera by a cursor movement in normalized window units.

        Args:
            dx: Horizontal cursor movement (positive to the right).
            dy: Vertical cursor movement (positive upwards, as GGUI reports it).
        """
        self.camera.apply_look_event(
            LookEvent(right=dx * LOOK_RADIANS_PER_WINDOW, down=-dy * LOOK_RADIANS_PER_WINDOW)
        )

    def _poll_input(self) -> None:
        window = self.window
        for event in window.get_events():
            if event.key == ti.ui.ESCAPE:
                self.close()
            else:
                self.handle_key(event.key, event.type == ti.ui.PRESS)

        if window.is_pressed(ti.ui.LMB):
            cursor = window.get_cursor_pos()
            if self._last_cursor is not None:
                self.handle_drag(cursor[0] - self._last_cursor[0], cursor[1] - self._last_cursor[1])
            self._last_cursor = (cursor[0], cursor[1])
        else:
            self._last_cursor = None

    # =========================================================================
    # Main Loop
    # =========================================================================

    def _ensure_renderer(self) -> Any:
        from src.voxelcast.core.renderer import OctreeRenderer

        if self._renderer is None:
            self._renderer = OctreeRenderer(self.width, self.height)
        return self._renderer

    def get_renderer(self) -> Any:
        """Get the OctreeRenderer driving the window, or None before run()."""
        return self._renderer

    def run(self) -> None:
        """Render and display frames until the window is closed.

        The octree and textures must already be uploaded.
        """
        from src.voxelcast.core.renderer import get_image

        renderer = self._ensure_renderer()
        self._initialize_window()

        last = time.perf_counter()
        while self.is_running():
            now = time.perf_counter()
            self.camera.update_position(now - last)
            last = now

            self._poll_input()

            renderer.set_camera(self.camera.get_camera_info())
            renderer.render()
            self.update_image_from_field(get_image())
            self.show_frame()

    def export_png(self) -> Path | None:
        """Export the last rendered frame to a timestamped PNG file.

        Returns:
            The written path, or None if nothing has been rendered yet.
        """
        from src.voxelcast.preview.export import save_png

        if self._renderer is None or self._renderer.frame_count == 0:
            logger.warning("Nothing rendered yet; skipping export")
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = self.export_dir / f"voxelcast_{timestamp}.png"
        save_png(self._renderer, path)
        logger.info("Exported %s", path)
        return path
