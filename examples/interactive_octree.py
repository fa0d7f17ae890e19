#!/usr/bin/env python3
"""Fly through a sparse voxel octree in a real-time preview window.

Usage:
    python -m examples.interactive_octree [--octree scene.npy] [--textures strip.png]

Controls:
    W / A / S / D   move forward / left / backward / right
    Space / Shift   move up / down
    Left drag       look around
    P               export the current frame as PNG
    Escape          quit
"""

import argparse
import logging
import math
import platform
import sys
from pathlib import Path

# Ensure the project root is in the Python path for direct execution
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import taichi as ti  # noqa: E402


def initialize_taichi() -> str:
    """Initialize Taichi with the best available backend.

    Returns:
        Name of the backend being used.
    """
    if platform.system() == "Darwin":
        try:
            ti.init(arch=ti.metal)
            return "Metal (GPU)"
        except Exception:
            pass

    try:
        ti.init(arch=ti.gpu)
        return "GPU"
    except Exception:
        pass

    ti.init(arch=ti.cpu)
    return "CPU"


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Interactive octree fly-through.")
    parser.add_argument("--width", type=int, default=960, help="Window width (default: 960)")
    parser.add_argument("--height", type=int, default=720, help="Window height (default: 720)")
    parser.add_argument("--octree", type=str, help="Load the octree buffer from a .npy file")
    parser.add_argument("--textures", type=str, help="Cube-map strip image with face textures")
    parser.add_argument("--seed", type=int, help="Seed for the random scene")
    parser.add_argument("--diagnostic", action="store_true", help="Shade misses by cost")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main() -> int:
    """Main entry point for the interactive viewer.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    # Initialize Taichi first (before importing modules that allocate fields)
    backend = initialize_taichi()
    print(f"Taichi backend: {backend}")

    from src.voxelcast.camera.fly import FlyCamera
    from src.voxelcast.config import SKY_BLUE
    from src.voxelcast.core.traversal import set_background_color, set_diagnostic_mode
    from src.voxelcast.octree.builder import build_octree, load_octree, random_voxels
    from src.voxelcast.octree.storage import upload_octree
    from src.voxelcast.preview.interactive import InteractivePreview
    from src.voxelcast.textures.sampler import (
        load_texture_strip,
        make_palette_textures,
        upload_textures,
    )

    if not InteractivePreview.is_display_available():
        print("Error: No display available. Cannot run interactive preview.")
        return 1

    if args.octree:
        upload_octree(load_octree(args.octree))
    else:
        print("Building random scene...")
        upload_octree(build_octree(random_voxels(seed=args.seed)))

    if args.textures:
        upload_textures(load_texture_strip(args.textures))
    else:
        upload_textures(make_palette_textures())

    set_background_color(SKY_BLUE)
    set_diagnostic_mode(args.diagnostic)

    camera = FlyCamera(pos=(0.0, 0.0, 80.0), fov=math.pi / 2)
    preview = InteractivePreview(args.width, args.height, camera)

    print("Starting interactive rendering...")
    print("  - WASD to move, Space/Shift for up/down, drag to look")
    print("  - P exports a PNG, Escape quits")

    try:
        preview.run()
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
    finally:
        preview.close()
        print("Preview window closed.")

    return 0


if __name__ == "__main__":
    sys.exit(main())
