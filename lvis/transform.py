import math

import numpy as np
from PIL import Image
from scipy import ndimage

from .augment import AugmentParams


def open_image(path: str) -> np.ndarray:
    """Loads an image file as float32 RGBA in [0, 1], shape (H, W, 4)."""
    with Image.open(path) as im:
        return np.asarray(im.convert("RGBA"), dtype=np.float32) / 255.0


def affine_matrix(width: int, height: int, params: AugmentParams) -> np.ndarray:
    """Source -> destination transform in (x, y) pixel coordinates.

    Scales and rotates about the image center, then shifts by the sampled
    translation in units of half the image width / height.
    """
    cx, cy = 0.5 * width, 0.5 * height
    tx = 0.5 * params.trans_x * width
    ty = 0.5 * params.trans_y * height
    rad = math.radians(params.rotate)
    cos, sin = math.cos(rad), math.sin(rad)

    to_center = np.array([[1, 0, cx + tx], [0, 1, cy + ty], [0, 0, 1]], dtype=np.float64)
    scale = np.diag([params.scale, params.scale, 1.0])
    rotate = np.array([[cos, -sin, 0], [sin, cos, 0], [0, 0, 1]], dtype=np.float64)
    from_center = np.array([[1, 0, -cx], [0, 1, -cy], [0, 0, 1]], dtype=np.float64)
    return to_center @ scale @ rotate @ from_center


def transform_image(rgba: np.ndarray, params: AugmentParams) -> np.ndarray:
    """Warps an RGBA image over a background of its own top-left color.

    Bilinear resampling with premultiplied 'over' compositing, so anything
    uncovered by the moved image shows the fill color instead of black.
    Output has the same pixel dimensions as the input.
    """
    height, width = rgba.shape[:2]
    inv = np.linalg.inv(affine_matrix(width, height, params))
    a, b, tx = inv[0]
    c, d, ty = inv[1]
    # scipy works in (row, col) index space with pixel centers at integers
    matrix = np.array([[d, c], [b, a]])
    offset = np.array([0.5 * (c + d) + ty - 0.5, 0.5 * (a + b) + tx - 0.5])

    alpha = rgba[..., 3]
    premul = rgba[..., :3] * alpha[..., None]
    warped = np.empty_like(rgba)
    for ch in range(3):
        warped[..., ch] = ndimage.affine_transform(premul[..., ch], matrix, offset=offset,
                                                   output_shape=(height, width), order=1,
                                                   mode='constant', cval=0.0)
    warped[..., 3] = ndimage.affine_transform(alpha, matrix, offset=offset, output_shape=(height, width),
                                              order=1, mode='constant', cval=0.0)

    fill = rgba[0, 0]
    fill_premul = fill[:3] * fill[3]
    cover = 1.0 - warped[..., 3:4]
    out = np.empty_like(rgba)
    out[..., :3] = warped[..., :3] + fill_premul * cover
    out[..., 3] = warped[..., 3] + fill[3] * cover[..., 0]
    nz = out[..., 3] > 0
    out[..., :3][nz] /= out[..., 3][nz][:, None]
    return np.clip(out, 0.0, 1.0)
