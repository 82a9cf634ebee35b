"""V1-like filtering of a single image with JAX.

A ``V1Img`` holds the resized, padded image and its opponent-color
components; any number of ``Vis`` (oriented Gabor) and ``ColorVis``
(center-surround DoG) channels read from it. Tensor layout follows
[Y, X, Polarity, Feature].
"""
import math
from typing import Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import jit

# sRGB primaries -> cone responses (Reinhard et al. 2001)
RGB_TO_LMS = np.array([
    [0.3811, 0.5783, 0.0402],
    [0.1967, 0.7244, 0.0782],
    [0.0241, 0.1288, 0.8444],
], dtype=np.float32)

GREY, RED_GREEN, BLUE_YELLOW = 0, 1, 2


def fade_weights(height: int, width: int, pad: int) -> np.ndarray:
    """0 inside the image, ramping to 1 at the outer edge of the padding."""
    if pad == 0:
        return np.zeros((height, width), dtype=np.float32)
    ys = np.arange(height + 2 * pad)
    xs = np.arange(width + 2 * pad)
    dy = np.maximum(np.maximum(pad - ys, ys - (pad + height - 1)), 0)
    dx = np.maximum(np.maximum(pad - xs, xs - (pad + width - 1)), 0)
    return (np.maximum(dy[:, None], dx[None, :]) / pad).astype(np.float32)


def _prepare_image(rgb, size: Tuple[int, int], pad: int):
    height, width = size
    if rgb.shape[:2] != (height, width):
        rgb = jax.image.resize(rgb, (height, width, 3), method="linear")
    chw = jnp.transpose(rgb, (2, 0, 1))
    mean = chw.mean(axis=(1, 2), keepdims=True)
    edge = jnp.pad(chw, ((0, 0), (pad, pad), (pad, pad)), mode="edge")
    w = jnp.asarray(fade_weights(height, width, pad))
    tsr = edge * (1.0 - w) + mean * w

    linear = jnp.where(tsr <= 0.04045, tsr / 12.92, ((tsr + 0.055) / 1.055) ** 2.4)
    l, m, s = jnp.tensordot(jnp.asarray(RGB_TO_LMS), linear, axes=1)
    lms = jnp.stack([(l + m + s) / 3.0, l - m, s - 0.5 * (l + m)])
    return tsr, lms


_prepare_image_jit = jit(_prepare_image, static_argnums=(1, 2))


class V1Img:
    """The one image all filter channels share for the current trial."""

    def __init__(self, size: Tuple[int, int] = (128, 128)):
        self.size = (int(size[0]), int(size[1]))
        self.pad = 0
        self.tsr = None  # padded RGB, (3, H + 2 pad, W + 2 pad)
        self.lms = None  # grey, red-green, blue-yellow at the same geometry

    def set_image(self, rgb: np.ndarray, pad: int):
        self.pad = int(pad)
        self.tsr, self.lms = _prepare_image_jit(jnp.asarray(rgb[..., :3], dtype=jnp.float32), self.size, self.pad)


def line_offset(angle_idx: int, n_angles: int) -> Tuple[int, int]:
    """(dy, dx) step along a line of the given orientation."""
    ang = angle_idx * math.pi / n_angles
    return int(round(math.sin(ang))), int(round(math.cos(ang)))


def gabor_filters(size: int, n_angles: int = 4, wavelength: float = 0.0, sig_len: float = 0.3,
                  sig_wd: float = 0.2, phase: float = 0.0, circle_edge: bool = True) -> np.ndarray:
    """Oriented Gabor kernels, shape (n_angles, size, size).

    Each kernel is balanced: positive lobes sum to 1 and negative lobes to -1.
    """
    wavelength = wavelength or float(size)
    ctr = 0.5 * (size - 1)
    ys, xs = np.mgrid[0:size, 0:size].astype(np.float64) - ctr
    len_norm = 1.0 / (2.0 * (sig_len * size) ** 2)
    wd_norm = 1.0 / (2.0 * (sig_wd * size) ** 2)
    filters = np.zeros((n_angles, size, size), dtype=np.float32)
    for ai in range(n_angles):
        ang = ai * math.pi / n_angles
        along = xs * math.cos(ang) + ys * math.sin(ang)
        across = -xs * math.sin(ang) + ys * math.cos(ang)
        g = np.exp(-(len_norm * along ** 2 + wd_norm * across ** 2)) * np.sin(2 * math.pi * across / wavelength + phase)
        if circle_edge:
            g[np.hypot(xs, ys) > 0.5 * size] = 0
        pos, neg = g[g > 0].sum(), -g[g < 0].sum()
        if pos > 0:
            g[g > 0] /= pos
        if neg > 0:
            g[g < 0] /= neg
        filters[ai] = g
    return filters


def dog_filter(size: int, on_sig: float = 0.125, off_sig: float = 0.25, circle_edge: bool = True) -> np.ndarray:
    """Center-surround difference of Gaussians, shape (size, size)."""
    ctr = 0.5 * (size - 1)
    ys, xs = np.mgrid[0:size, 0:size].astype(np.float64) - ctr
    dist2 = xs ** 2 + ys ** 2
    on = np.exp(-dist2 / (2 * (on_sig * size) ** 2))
    off = np.exp(-dist2 / (2 * (off_sig * size) ** 2))
    if circle_edge:
        outside = np.sqrt(dist2) > 0.5 * size
        on[outside] = 0
        off[outside] = 0
    return (on / on.sum() - off / off.sum()).astype(np.float32)


def conv_grid(img, kernels, start: int, spacing: int, out: Tuple[int, int]):
    """Strided correlation of a 2D image with (F, k, k) kernels -> (out_y, out_x, F)."""
    ksz = kernels.shape[-1]
    h = (out[0] - 1) * spacing + ksz
    w = (out[1] - 1) * spacing + ksz
    crop = jax.lax.dynamic_slice(img, (start, start), (h, w))
    res = jax.lax.conv_general_dilated(crop[None, None], kernels[:, None], (spacing, spacing), "VALID")
    return jnp.transpose(res[0], (1, 2, 0))


def polarize(res):
    """(Y, X, F) signed response -> (Y, X, 2, F) on / off rectified."""
    return jnp.stack([jnp.maximum(res, 0.0), jnp.maximum(-res, 0.0)], axis=2)


def shift(t, dy: int, dx: int):
    """Value at (y, x) becomes t[y + dy, x + dx], zero outside."""
    ny, nx = t.shape[0], t.shape[1]
    padded = jnp.pad(t, ((1, 1), (1, 1)) + ((0, 0),) * (t.ndim - 2))
    return padded[1 + dy:1 + dy + ny, 1 + dx:1 + dx + nx]


def max_pool2(t):
    ny, nx = t.shape[0], t.shape[1]
    return t.reshape((ny // 2, 2, nx // 2, 2) + t.shape[2:]).max(axis=(1, 3))


class NeighInhib:
    """Each unit is inhibited by the same feature in its two orthogonal neighbors."""

    def __init__(self, on: bool = True, gi: float = 0.6):
        self.on = on
        self.gi = gi

    def inhib4(self, t):
        n_angles = t.shape[-1]
        cols = []
        for ai in range(n_angles):
            oy, ox = line_offset(ai + n_angles // 2, n_angles)
            v = t[..., ai]
            cols.append(jnp.maximum(shift(v, oy, ox), shift(v, -oy, -ox)))
        return self.gi * jnp.stack(cols, axis=-1)


class KWTA:
    """k-winners-take-all over the whole layer and within each (y, x) pool.

    Inhibition sits a quarter of the way from the k+1th to the kth strongest
    input; surviving excitation goes through an x/(x+1) rate function.
    """

    def __init__(self, on: bool = True, layer_pct: float = 0.1, pool_k: int = 2, q: float = 0.25,
                 gain: float = 80.0):
        self.on = on
        self.layer_pct = layer_pct
        self.pool_k = pool_k
        self.q = q
        self.gain = gain

    def _kwta_gi(self, flat, k: int):
        srt = jnp.sort(flat, axis=-1)[..., ::-1]
        k = min(max(k, 1), flat.shape[-1] - 1)
        return srt[..., k] + self.q * (srt[..., k - 1] - srt[..., k])

    def apply(self, g, ext_gi=None):
        ny, nx = g.shape[0], g.shape[1]
        layer_k = int(round(self.layer_pct * g.size))
        gi = self._kwta_gi(g.reshape(-1), layer_k)
        pool_gi = self._kwta_gi(g.reshape(ny, nx, -1), self.pool_k)
        gi = jnp.maximum(gi, pool_gi)[:, :, None, None]
        if ext_gi is not None:
            gi = jnp.maximum(gi, ext_gi)
        x = self.gain * jnp.maximum(g - gi, 0.0)
        return x / (x + 1.0)


def required_pad(border_ex: int, size: int, spacing: int) -> int:
    """Image padding that keeps every receptive field of a channel in bounds."""
    lead = size // 2 - spacing // 2 - border_ex
    trail = (size - size // 2) - (spacing - spacing // 2) - border_ex
    return max(lead, trail, 0)


class Vis:
    """Oriented-edge V1 channel: Gabor simple cells plus length-sum / end-stop complex cells.

    ``v1_all`` holds the result, shape [Y/2, X/2, 5, n_angles]: length-sum,
    two end-stop directions, then the two pooled simple-cell polarities.
    """

    def __init__(self, border_ex: int, size: int, spacing: int, img: V1Img, color: bool = True,
                 color_gain: float = 8.0, gain: float = 2.0, n_angles: int = 4):
        self.img = img
        self.border_ex = border_ex
        self.size = size
        self.spacing = spacing
        self.color = color
        self.color_gain = color_gain
        self.gain = gain
        self.n_angles = n_angles
        self.neigh_inhib = NeighInhib()
        self.kwta = KWTA()
        self.gabor = jnp.asarray(gabor_filters(size, n_angles))
        ny = (img.size[0] - 2 * border_ex) // spacing
        nx = (img.size[1] - 2 * border_ex) // spacing
        self.out = (ny, nx)
        self.shape = (ny // 2, nx // 2, 5, n_angles)
        self.v1_all = np.zeros(self.shape, dtype=np.float32)
        self._filter_func = jit(self._static_filter, static_argnums=(1,))

    @property
    def pad(self) -> int:
        return required_pad(self.border_ex, self.size, self.spacing)

    def simple(self, chan, start: int, gain: float):
        res = polarize(conv_grid(chan, self.gabor, start, self.spacing, self.out) * gain)
        ext_gi = self.neigh_inhib.inhib4(res) if self.neigh_inhib.on else None
        return self.kwta.apply(res, ext_gi) if self.kwta.on else res

    def complex(self, v1s_max):
        v1s_pool = max_pool2(v1s_max)
        ang_pool = max_pool2(v1s_max.max(axis=2))
        len_sum, end_stop = [], []
        for ai in range(self.n_angles):
            dy, dx = line_offset(ai, self.n_angles)
            v = ang_pool[..., ai]
            len_sum.append((v + shift(v, dy, dx) + shift(v, -dy, -dx)) / 3.0)
        len_sum = jnp.stack(len_sum, axis=-1)
        for sign in (1, -1):
            stops = []
            for ai in range(self.n_angles):
                dy, dx = line_offset(ai, self.n_angles)
                beyond = shift(ang_pool, sign * dy, sign * dx).max(axis=-1)
                stops.append(jnp.maximum(len_sum[..., ai] - beyond, 0.0))
            end_stop.append(jnp.stack(stops, axis=-1))
        return jnp.concatenate([len_sum[:, :, None], jnp.stack(end_stop, axis=2), v1s_pool], axis=2)

    def _static_filter(self, lms, pad: int):
        start = pad + self.border_ex + self.spacing // 2 - self.size // 2
        v1s_max = self.simple(lms[GREY], start, self.gain)
        if self.color:
            rg = self.simple(lms[RED_GREEN], start, self.gain * self.color_gain)
            by = self.simple(lms[BLUE_YELLOW], start, self.gain * self.color_gain)
            v1s_max = jnp.maximum(v1s_max, jnp.maximum(rg, by))
        return self.complex(v1s_max)

    def filter(self) -> np.ndarray:
        np.copyto(self.v1_all, np.asarray(self._filter_func(self.img.lms, self.img.pad)))
        return self.v1_all


class ColorVis:
    """Color-opponent blob channel: DoG over red-green and blue-yellow.

    ``kwta_tsr`` holds the result, shape [Y, X, 2, 2] (on / off by RG / BY).
    """

    def __init__(self, border_ex: int, size: int, spacing: int, img: V1Img, gain: float = 8.0):
        self.img = img
        self.border_ex = border_ex
        self.size = size
        self.spacing = spacing
        self.gain = gain
        self.kwta = KWTA(layer_pct=0.2, pool_k=1)
        self.dog = jnp.asarray(dog_filter(size))[None]
        ny = (img.size[0] - 2 * border_ex) // spacing
        nx = (img.size[1] - 2 * border_ex) // spacing
        self.out = (ny, nx)
        self.shape = (ny, nx, 2, 2)
        self.kwta_tsr = np.zeros(self.shape, dtype=np.float32)
        self._filter_func = jit(self._static_filter, static_argnums=(1,))

    @property
    def pad(self) -> int:
        return required_pad(self.border_ex, self.size, self.spacing)

    def _static_filter(self, lms, pad: int):
        start = pad + self.border_ex + self.spacing // 2 - self.size // 2
        rg = conv_grid(lms[RED_GREEN], self.dog, start, self.spacing, self.out)
        by = conv_grid(lms[BLUE_YELLOW], self.dog, start, self.spacing, self.out)
        res = polarize(jnp.concatenate([rg, by], axis=-1) * self.gain)
        return self.kwta.apply(res) if self.kwta.on else res

    def filter(self) -> np.ndarray:
        np.copyto(self.kwta_tsr, np.asarray(self._filter_func(self.img.lms, self.img.pad)))
        return self.kwta_tsr
