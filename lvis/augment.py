from typing import NamedTuple, Tuple

import numpy as np


class AugmentParams(NamedTuple):
    trans_x: float
    trans_y: float
    scale: float
    rotate: float  # degrees


IDENTITY = AugmentParams(0.0, 0.0, 1.0, 0.0)


class Augmenter:
    """Draws the per-trial in-plane jitter.

    Translation is a proportion of the half-width / half-height: 1.0 moves
    something at the center onto the edge.
    """

    def __init__(self, trans_max: Tuple[float, float] = (0.2, 0.2), trans_sigma: float = 0.0,
                 scale_range: Tuple[float, float] = (0.8, 1.1), rotate_max: float = 8.0):
        self.trans_max = (float(trans_max[0]), float(trans_max[1]))
        self.trans_sigma = float(trans_sigma)
        self.scale_range = (float(scale_range[0]), float(scale_range[1]))
        self.rotate_max = float(rotate_max)

    def sample_translation(self, rng: np.random.Generator) -> Tuple[float, float]:
        mx, my = self.trans_max
        if self.trans_sigma > 0:
            # clipping piles the tails onto +/- max, which is intended
            tx = float(np.clip(rng.normal(0.0, self.trans_sigma), -mx, mx))
            ty = float(np.clip(rng.normal(0.0, self.trans_sigma), -my, my))
        else:
            tx = float((rng.random() * 2 - 1) * mx)
            ty = float((rng.random() * 2 - 1) * my)
        return tx, ty

    def sample(self, rng: np.random.Generator) -> AugmentParams:
        tx, ty = self.sample_translation(rng)
        lo, hi = self.scale_range
        scale = lo + (hi - lo) * float(rng.random())
        rotate = float((rng.random() * 2 - 1) * self.rotate_max)
        return AugmentParams(tx, ty, scale, rotate)
