"""Texture array storage and per-face sampling of voxel materials.

Each material owns six consecutive square layers of the texture array, in
the order top, bottom, right, left, back, front. A voxel hit is turned into
a lookup by picking the face from the struck axis and the side of the cube
that was hit, then projecting the hit point onto that face:

    uv = R * (hit_point - cube_min)      R = face resolution in texels
    inv = R - uv

    axis  side  face    layer offset  s         t
    Y     +     top     0             uv.x      uv.z
    Y     -     bottom  1             uv.x      inv.z
    X     +     right   2             inv.z     inv.y
    X     -     left    3             uv.z      inv.y
    Z     +     back    4             uv.x      inv.y
    Z     -     front   5             inv.x     inv.y

s runs along image columns and t along image rows (row 0 at the top of the
source image), so the side faces appear upright when viewed from outside.

Texels are fetched with nearest filtering and clamped to the face, like a
clamp-to-edge sampler.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.voxelcast.textures.sampler import make_palette_textures, upload_textures
    >>> upload_textures(make_palette_textures(resolution=16))
"""

import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm
from PIL import Image as PILImage

logger = logging.getLogger(__name__)

# Type aliases for vectors using Taichi's math module
vec2 = tm.vec2
vec3 = tm.vec3

FACE_TOP = 0
FACE_BOTTOM = 1
FACE_RIGHT = 2
FACE_LEFT = 3
FACE_BACK = 4
FACE_FRONT = 5
FACES_PER_MATERIAL = 6

FACE_NAMES = ("top", "bottom", "right", "left", "back", "front")

# Preallocated texture array limits
MAX_MATERIALS = 32
MAX_TEXTURE_LAYERS = MAX_MATERIALS * FACES_PER_MATERIAL
MAX_FACE_RESOLUTION = 64

# Brightness of each face in generated palette textures, indexed by face
PALETTE_FACE_SHADES = (1.0, 0.5, 0.8, 0.7, 0.9, 0.6)
PALETTE_BORDER_SHADE = 0.6

# Palette indexed by material id (id 0 never renders: it marks empty slots)
DEFAULT_PALETTE = (
    (1.0, 0.0, 1.0),
    (0.55, 0.55, 0.55),
    (0.45, 0.32, 0.2),
    (0.3, 0.65, 0.25),
    (0.85, 0.8, 0.55),
    (0.62, 0.44, 0.26),
    (0.2, 0.4, 0.85),
    (0.9, 0.9, 0.95),
)

textures = ti.Vector.field(
    3,
    dtype=ti.f32,
    shape=(MAX_TEXTURE_LAYERS, MAX_FACE_RESOLUTION, MAX_FACE_RESOLUTION),
)
_face_resolution = ti.field(dtype=ti.i32, shape=())
_layer_count = ti.field(dtype=ti.i32, shape=())


@ti.dataclass
class FaceSample:
    """A resolved texture lookup for one face of a voxel.

    Attributes:
        layer: Texture array layer (material_id * 6 + face).
        face: Face offset within the material (FACE_TOP ... FACE_FRONT).
        st: Sample position on the face in texels (column, row).
    """

    layer: ti.i32
    face: ti.i32
    st: vec2


# =============================================================================
# Texture Array Management (Python-side)
# =============================================================================


def clear_textures() -> None:
    """Forget the uploaded texture array."""
    _face_resolution[None] = 0
    _layer_count[None] = 0


def is_textures_loaded() -> bool:
    """Check whether a texture array has been uploaded."""
    return int(_layer_count[None]) > 0


def get_face_resolution() -> int:
    """Get the per-face resolution of the uploaded texture array."""
    return int(_face_resolution[None])


def get_material_count() -> int:
    """Get the number of materials covered by the uploaded texture array."""
    return int(_layer_count[None]) // FACES_PER_MATERIAL


def _to_float_rgb(array: npt.NDArray) -> npt.NDArray[np.float32]:
    """Convert uint8 or float RGB(A) texels to float32 RGB in [0, 1]."""
    if np.issubdtype(array.dtype, np.integer):
        array = array.astype(np.float32) / 255.0
    return np.clip(array[..., :3], 0.0, 1.0).astype(np.float32)


def upload_textures(layers: npt.NDArray) -> None:
    """Copy a texture array into the device field.

    Args:
        layers: Array of shape (layer_count, R, R, 3 or 4). uint8 values are
            scaled to [0, 1]; float values are clamped to [0, 1]. Alpha is
            dropped. layer_count must be a multiple of six.

    Raises:
        ValueError: If the shape is wrong or exceeds the preallocated limits.
    """
    layers = np.asarray(layers)
    if layers.ndim != 4 or layers.shape[3] not in (3, 4) or layers.shape[1] != layers.shape[2]:
        raise ValueError(
            f"Texture array must have shape (layers, R, R, 3|4), got {layers.shape}"
        )
    layer_count, resolution = layers.shape[0], layers.shape[1]
    if layer_count == 0 or layer_count % FACES_PER_MATERIAL != 0:
        raise ValueError(
            f"Texture layer count must be a positive multiple of "
            f"{FACES_PER_MATERIAL}, got {layer_count}"
        )
    if layer_count > MAX_TEXTURE_LAYERS:
        raise ValueError(
            f"Texture array has {layer_count} layers, exceeding the maximum "
            f"supported ({MAX_TEXTURE_LAYERS})"
        )
    if not 0 < resolution <= MAX_FACE_RESOLUTION:
        raise ValueError(
            f"Face resolution must be in [1, {MAX_FACE_RESOLUTION}], got {resolution}"
        )

    padded = np.zeros(
        (MAX_TEXTURE_LAYERS, MAX_FACE_RESOLUTION, MAX_FACE_RESOLUTION, 3), dtype=np.float32
    )
    padded[:layer_count, :resolution, :resolution] = _to_float_rgb(layers)
    textures.from_numpy(padded)
    _face_resolution[None] = resolution
    _layer_count[None] = layer_count
    logger.debug(
        "Uploaded texture array: %d materials at %dx%d",
        layer_count // FACES_PER_MATERIAL,
        resolution,
        resolution,
    )


def load_texture_strip(path: str | Path) -> npt.NDArray[np.uint8]:
    """Load a cube-map strip image into a texture array.

    The image holds one row of six square faces per material, left to right
    in the order top, bottom, right, left, back, front. Its width is
    therefore six times the face resolution and its height a multiple of it.

    Args:
        path: Path to the strip image (PNG or any format Pillow reads).

    Returns:
        uint8 array of shape (materials * 6, R, R, 3).

    Raises:
        FileNotFoundError: If the image does not exist.
        ValueError: If the image dimensions do not form whole faces.
    """
    with PILImage.open(Path(path)) as image:
        data = np.asarray(image.convert("RGB"))

    height, width = data.shape[0], data.shape[1]
    face = width // FACES_PER_MATERIAL
    if face == 0 or width % FACES_PER_MATERIAL != 0 or height % face != 0:
        raise ValueError(
            f"Strip image {width}x{height} does not split into rows of "
            f"{FACES_PER_MATERIAL} square faces"
        )
    materials = height // face
    layers = data.reshape(materials, face, FACES_PER_MATERIAL, face, 3)
    layers = layers.transpose(0, 2, 1, 3, 4)
    return np.ascontiguousarray(layers.reshape(materials * FACES_PER_MATERIAL, face, face, 3))


def make_palette_textures(
    colors: Sequence[tuple[float, float, float]] = DEFAULT_PALETTE,
    resolution: int = 16,
) -> npt.NDArray[np.float32]:
    """Generate flat-colored textures with per-face shading.

    Each face is filled with its material color scaled by the face's shade
    and framed by a one-texel darker border, so that faces and voxel edges
    are distinguishable without any lighting model.

    Args:
        colors: RGB color per material id.
        resolution: Face resolution in texels.

    Returns:
        float32 array of shape (len(colors) * 6, resolution, resolution, 3).
    """
    border = np.ones((resolution, resolution, 1), dtype=np.float32)
    border[0, :] = border[-1, :] = PALETTE_BORDER_SHADE
    border[:, 0] = border[:, -1] = PALETTE_BORDER_SHADE

    layers = np.empty((len(colors) * FACES_PER_MATERIAL, resolution, resolution, 3), np.float32)
    for material, color in enumerate(colors):
        for face, shade in enumerate(PALETTE_FACE_SHADES):
            rgb = np.asarray(color, dtype=np.float32) * shade
            layers[material * FACES_PER_MATERIAL + face] = border * rgb
    return layers


# =============================================================================
# Face Selection and Sampling (Taichi-compatible)
# =============================================================================


@ti.func
def select_face(cube_min: vec3, material_id: ti.i32, axis: ti.i32, hit_point: vec3) -> FaceSample:
    """Pick the face of a voxel that was hit and the texel position on it.

    Args:
        cube_min: Minimum corner of the voxel.
        material_id: Material id stored in the octree.
        axis: Axis of the face the ray crossed (0=X, 1=Y, 2=Z).
        hit_point: Point where the ray entered the voxel.

    Returns:
        The texture layer, face offset and face-local sample position.
    """
    res = ti.cast(_face_resolution[None], ti.f32)
    uv = res * (hit_point - cube_min)
    inv = res - uv

    face = FACE_FRONT
    s = inv.x
    t = inv.y
    if axis == 1:
        if hit_point.y > cube_min.y:
            face = FACE_TOP
            s = uv.x
            t = uv.z
        else:
            face = FACE_BOTTOM
            s = uv.x
            t = inv.z
    elif axis == 0:
        if hit_point.x > cube_min.x:
            face = FACE_RIGHT
            s = inv.z
            t = inv.y
        else:
            face = FACE_LEFT
            s = uv.z
            t = inv.y
    elif hit_point.z > cube_min.z:
        face = FACE_BACK
        s = uv.x
        t = inv.y

    return FaceSample(
        layer=material_id * FACES_PER_MATERIAL + face,
        face=face,
        st=vec2(s, t),
    )


@ti.func
def fetch_texel(layer: ti.i32, st: vec2) -> vec3:
    """Nearest-texel fetch, clamped to the face and the preallocated array."""
    last = _face_resolution[None] - 1
    col = ti.min(ti.max(ti.cast(ti.floor(st.x), ti.i32), 0), last)
    row = ti.min(ti.max(ti.cast(ti.floor(st.y), ti.i32), 0), last)
    safe_layer = ti.min(ti.max(layer, 0), MAX_TEXTURE_LAYERS - 1)
    return textures[safe_layer, row, col]


@ti.func
def sample_face(cube_min: vec3, material_id: ti.i32, axis: ti.i32, hit_point: vec3) -> vec3:
    """Resolve a voxel hit to the color of the face that was struck.

    Args:
        cube_min: Minimum corner of the voxel.
        material_id: Material id stored in the octree.
        axis: Axis of the face the ray crossed (0=X, 1=Y, 2=Z).
        hit_point: Point where the ray entered the voxel.

    Returns:
        The RGB color of the nearest texel.
    """
    sample = select_face(cube_min, material_id, axis, hit_point)
    return fetch_texel(sample.layer, sample.st)
