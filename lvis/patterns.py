"""Target output patterns, one row per category."""
import math
import os
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import ConfigError, PatternSearchError
from .logger import debug, log


def n_from_pct(pct: float, n: int) -> int:
    """Number of units for a proportion of n, rounding halves up."""
    return int(math.floor(pct * n + 0.5))


def permuted_binary(n_units: int, n_on: int, rng: np.random.Generator) -> np.ndarray:
    row = np.zeros(n_units, dtype=np.float32)
    row[rng.permutation(n_units)[:n_on]] = 1.0
    return row


def n_differ(a: np.ndarray, b: np.ndarray) -> int:
    """On units of a that are not on in b."""
    return int(np.count_nonzero((a > 0) & ~(b > 0)))


def permuted_binary_min_diff(rows: int, n_units: int, n_on: int, min_diff: int,
                             rng: Optional[np.random.Generator] = None, max_iters: int = 1000) -> np.ndarray:
    """Random binary rows of exactly n_on active units, every pair differing by at least min_diff.

    Rows that clash with an earlier row are redrawn, one pass at a time,
    until a pass finds no clash or max_iters passes have run.
    """
    if n_on > n_units:
        raise ConfigError(f"Cannot activate {n_on} of {n_units} units")
    rng = rng if rng is not None else np.random.default_rng()
    pats = np.stack([permuted_binary(n_units, n_on, rng) for _ in range(rows)]) if rows else \
        np.zeros((0, n_units), dtype=np.float32)
    for it in range(max_iters):
        n_bad = 0
        for i in range(rows):
            for j in range(i + 1, rows):
                if n_differ(pats[j], pats[i]) < min_diff:
                    pats[j] = permuted_binary(n_units, n_on, rng)
                    n_bad += 1
        if n_bad == 0:
            debug(f"Random patterns settled after {it + 1} passes")
            return pats
    raise PatternSearchError(
        f"Could not find {rows} patterns of {n_on}/{n_units} on with min diff {min_diff} "
        f"in {max_iters} passes; loosen the difference or enlarge the output layer")


class OutputPatterns:
    """Target table for the output layer.

    ``out_size`` is (X, Y). The number of rows is at least the number of
    categories; rows past the categories are spare and named ``P%03d``.
    """

    def __init__(self, cats: Sequence[str], out_size: Tuple[int, int] = (10, 10), n_out_per: int = 5,
                 max_out: int = 0):
        self.cats = list(cats)
        self.out_size = (int(out_size[0]), int(out_size[1]))
        self.n_out_per = n_out_per
        self.max_out = max(len(self.cats), max_out)
        nx, ny = self.out_size
        if self.max_out > nx * ny:
            raise ConfigError(f"{self.max_out} output patterns do not fit a {nx}x{ny} output layer")
        self.names: List[str] = [self.cats[i] if i < len(self.cats) else f"P{i:03d}" for i in range(self.max_out)]
        self.table = np.zeros((self.max_out, ny, nx), dtype=np.float32)

    @property
    def shape(self) -> Tuple[int, ...]:
        """Shape of a single row (the output layer)."""
        return self.table.shape[1:]

    @property
    def values(self) -> np.ndarray:
        """Rows flattened to (max_out, cells)."""
        return self.table.reshape(self.max_out, -1)

    def pattern(self, idx: int) -> np.ndarray:
        return self.table[idx]

    def config_localist(self):
        nx, ny = self.out_size
        self.table = np.zeros((self.max_out, ny, nx, self.n_out_per, 1), dtype=np.float32)
        flat = self.table.reshape(self.max_out, -1)
        for i in range(self.max_out):
            si = i * self.n_out_per
            flat[i, si:si + self.n_out_per] = 1.0
        return self

    def cache_file(self, n_on: int, min_diff: int, cache_dir: str = "") -> str:
        nx, ny = self.out_size
        return os.path.join(cache_dir, f"rndpats_{nx}x{ny}_n{self.max_out}_on{n_on}_df{min_diff}.tsv")

    def config_random(self, pct_on: float = 0.2, min_diff_pct: float = 0.5, cache_dir: str = "",
                      rng: Optional[np.random.Generator] = None, max_iters: int = 1000):
        nx, ny = self.out_size
        n_units = nx * ny
        n_on = n_from_pct(pct_on, n_units)
        min_diff = n_from_pct(min_diff_pct, n_on)
        fname = self.cache_file(n_on, min_diff, cache_dir)
        if os.path.exists(fname):
            self.open_tsv(fname)
            log(f"Loaded random output patterns from {fname}")
        else:
            pats = permuted_binary_min_diff(self.max_out, n_units, n_on, min_diff, rng, max_iters)
            self.table = pats.reshape(self.max_out, ny, nx)
            if cache_dir:
                os.makedirs(cache_dir, exist_ok=True)
            self.save_tsv(fname)
            log(f"Generated random output patterns ({n_on} on, min diff {min_diff}) -> {fname}")
        return self

    def to_frame(self) -> pd.DataFrame:
        vals = self.values
        cols = {f"Output_{i:03d}": vals[:, i] for i in range(vals.shape[1])}
        return pd.DataFrame({"Name": self.names, **cols})

    def save_tsv(self, fname: str):
        self.to_frame().to_csv(fname, sep="\t", index=False)

    def open_tsv(self, fname: str):
        df = pd.read_csv(fname, sep="\t")
        vals = df.drop(columns=["Name"]).to_numpy(dtype=np.float32)
        nx, ny = self.out_size
        if vals.shape != (self.max_out, nx * ny):
            raise ConfigError(f"Pattern file {fname} has shape {vals.shape}, expected {(self.max_out, nx * ny)}")
        self.names = [str(n) for n in df["Name"]]
        self.table = vals.reshape(self.max_out, ny, nx)


def build_patterns(cfg, cats: Sequence[str], rng: Optional[np.random.Generator] = None) -> OutputPatterns:
    pats = OutputPatterns(cats, cfg.OUT_SIZE, cfg.N_OUT_PER, cfg.MAX_OUT)
    if cfg.OUT_RANDOM:
        return pats.config_random(cfg.RND_PCT_ON, cfg.RND_MIN_DIFF, cfg.CACHE_DIR, rng, cfg.PATTERN_MAX_ITERS)
    return pats.config_localist()
