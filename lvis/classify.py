"""Scoring an output activation against the target pattern table."""
from typing import Callable, Dict, List, NamedTuple, Sequence, Tuple

import numpy as np
import pandas as pd


def inv_correlation(a: np.ndarray, b: np.ndarray) -> float:
    """1 - Pearson correlation; a constant vector counts as uncorrelated."""
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    da = a - a.mean()
    db = b - b.mean()
    denom = np.sqrt(np.dot(da, da) * np.dot(db, db))
    if denom == 0:
        return 1.0
    return float(1.0 - np.dot(da, db) / denom)


def closest_rows(probe: np.ndarray, table: np.ndarray,
                 metric: Callable[[np.ndarray, np.ndarray], float] = inv_correlation) -> List[Tuple[float, int]]:
    """(distance, row) for every row of table, nearest first.

    The sort is stable, so equal distances keep row order.
    """
    probe = np.asarray(probe).ravel()
    rows = table.shape[0]
    cells = table.reshape(rows, -1)
    if cells.shape[1] != probe.size:
        raise ValueError(f"Probe size {probe.size} != pattern cell size {cells.shape[1]}")
    dsts = [(metric(probe, cells[ri]), ri) for ri in range(rows)]
    return sorted(dsts, key=lambda d: d[0])


class ClassResult(NamedTuple):
    best: int
    err: float
    err2: float


def out_err(probe: np.ndarray, table: np.ndarray, true_idx: int) -> ClassResult:
    """Nearest-pattern response plus the top-1 and top-2 error for the true category."""
    dsts = closest_rows(probe, table)
    best = dsts[0][1]
    err = 0.0 if best == true_idx else 1.0
    err2 = err
    if len(dsts) > 1 and dsts[1][1] == true_idx:
        err2 = 0.0
    return ClassResult(best, err, err2)


class ConfusionMatrix:
    """Counts of (true category, response) pairs and their row-normalized probabilities."""

    def __init__(self, cats: Sequence[str]):
        self.cats = list(cats)
        n = len(self.cats)
        self.counts = np.zeros((n, n), dtype=np.int64)

    def incr(self, true_idx: int, resp_idx: int):
        if 0 <= resp_idx < len(self.cats):
            self.counts[true_idx, resp_idx] += 1

    def probs(self) -> np.ndarray:
        totals = self.counts.sum(axis=1, keepdims=True)
        with np.errstate(invalid="ignore", divide="ignore"):
            return np.where(totals > 0, self.counts / np.maximum(totals, 1), 0.0)

    def accuracy(self) -> Dict[str, float]:
        return {cat: float(p) for cat, p in zip(self.cats, np.diag(self.probs()))}

    def merge(self, other: "ConfusionMatrix"):
        self.counts += other.counts

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.probs(), index=self.cats, columns=self.cats)

    def to_dict(self) -> dict:
        return {"labels": self.cats, "counts": self.counts.tolist(), "probs": self.probs().tolist()}

    def save_csv(self, fname: str):
        self.to_frame().to_csv(fname)


class EpochStats:
    """Running trial error means, reset at each epoch boundary."""

    def __init__(self):
        self.history: List[dict] = []
        self.reset()

    def reset(self):
        self.n = 0
        self.err_sum = 0.0
        self.err2_sum = 0.0

    def add(self, res: ClassResult):
        self.n += 1
        self.err_sum += res.err
        self.err2_sum += res.err2

    @property
    def pct_err(self) -> float:
        return self.err_sum / self.n if self.n else 0.0

    @property
    def pct_err2(self) -> float:
        return self.err2_sum / self.n if self.n else 0.0

    def end_epoch(self, epoch: int) -> dict:
        row = {"epoch": epoch, "trials": self.n, "pct_err": self.pct_err, "pct_err2": self.pct_err2}
        self.history.append(row)
        self.reset()
        return row
