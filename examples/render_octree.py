#!/usr/bin/env python3
"""Render a sparse voxel octree to a PNG.

The octree is either loaded from a .npy buffer (see save_octree) or built
from a random voxel cloud. Textures come from a cube-map strip image or, by
default, a generated flat-color palette.

Usage:
    python -m examples.render_octree [options]

Example:
    python -m examples.render_octree --width 640 --height 480 --seed 7
    python -m examples.render_octree --octree scene.npy --textures blocks.png
    python -m examples.render_octree --diagnostic --status-output status.png
"""

import argparse
import logging
import math
import sys
import time
from pathlib import Path

import taichi as ti


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a sparse voxel octree.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--width", type=int, default=512, help="Image width (default: 512)")
    parser.add_argument("--height", type=int, default=512, help="Image height (default: 512)")
    parser.add_argument(
        "--output", type=str, default="octree.png", help="Output file (default: octree.png)"
    )
    parser.add_argument("--octree", type=str, help="Load the octree buffer from a .npy file")
    parser.add_argument(
        "--save-octree", type=str, help="Also save the rendered octree buffer to a .npy file"
    )
    parser.add_argument("--textures", type=str, help="Cube-map strip image with face textures")
    parser.add_argument(
        "--extent", type=int, default=50, help="Half size of the random scene (default: 50)"
    )
    parser.add_argument(
        "--density",
        type=float,
        default=1.0 / 12.0,
        help="Fraction of random scene cells filled (default: 1/12)",
    )
    parser.add_argument("--seed", type=int, help="Seed for the random scene")
    parser.add_argument(
        "--eye", type=float, nargs=3, default=(0.0, 0.0, 80.0), help="Camera position"
    )
    parser.add_argument(
        "--target", type=float, nargs=3, default=(0.0, 0.0, 0.0), help="Camera look-at point"
    )
    parser.add_argument(
        "--fov", type=float, default=90.0, help="Vertical field of view in degrees (default: 90)"
    )
    parser.add_argument(
        "--diagnostic", action="store_true", help="Shade missed rays by traversal cost"
    )
    parser.add_argument(
        "--strict", action="store_true", help="Fail if any ray exceeds the depth bound"
    )
    parser.add_argument("--status-output", type=str, help="Also save the ray status map")
    parser.add_argument("--cpu", action="store_true", help="Force the CPU backend")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser.parse_args()


def render_octree(args: argparse.Namespace) -> Path:
    """Build or load the scene, render one frame and save it.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports to allow Taichi initialization first
    from src.voxelcast.config import RenderConfig
    from src.voxelcast.core.renderer import OctreeRenderer
    from src.voxelcast.octree.builder import build_octree, load_octree, random_voxels, save_octree
    from src.voxelcast.octree.storage import upload_octree
    from src.voxelcast.preview.export import save_png, save_status_png
    from src.voxelcast.textures.sampler import (
        load_texture_strip,
        make_palette_textures,
        upload_textures,
    )

    config = RenderConfig(
        width=args.width,
        height=args.height,
        fov=math.radians(args.fov),
        eye=tuple(args.eye),
        target=tuple(args.target),
        diagnostic_mode=args.diagnostic,
        strict=args.strict,
    )
    config.validate()

    if args.octree:
        if not args.quiet:
            print(f"Loading octree from {args.octree}...")
        buffer = load_octree(args.octree)
    else:
        if not args.quiet:
            print(f"Building random scene (extent {args.extent}, density {args.density:.3f})...")
        buffer = build_octree(random_voxels(args.extent, args.density, seed=args.seed))
    upload_octree(buffer)

    if args.save_octree:
        save_octree(args.save_octree, buffer)

    if args.textures:
        upload_textures(load_texture_strip(args.textures))
    else:
        upload_textures(make_palette_textures(resolution=config.face_resolution))

    renderer = OctreeRenderer.from_config(config)

    if not args.quiet:
        print(f"Rendering {config.width}x{config.height}...")
    start_time = time.time()
    overflow = renderer.render(strict=config.strict)

    output_file = Path(args.output)
    save_png(renderer, output_file)
    if args.status_output:
        save_status_png(renderer, args.status_output)

    if not args.quiet:
        print(f"Frame time: {renderer.last_frame_ms:.2f} ms")
        if overflow:
            print(f"Warning: {overflow} pixels exceeded the traversal depth bound")
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {time.time() - start_time:.2f}s")

    return output_file


def main() -> int:
    """Main entry point."""
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cpu:
        ti.init(arch=ti.cpu)
    else:
        # Use GPU if available, fall back to CPU
        try:
            ti.init(arch=ti.gpu)
        except Exception:
            ti.init(arch=ti.cpu)

    try:
        render_octree(args)
        return 0
    except (ValueError, RuntimeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
