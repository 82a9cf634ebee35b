from typing import FrozenSet, Optional, Tuple

import numpy as np

from .counters import TrialCounters
from .errors import ConfigError


def alloc_rows(n_items: int, n_workers: int, rank: int) -> Tuple[int, int]:
    """Contiguous [start, end) row range for one of n_workers.

    Only an even multiple of n_workers rows is handed out; the few rows left
    at the end are not presented.
    """
    if n_workers < 1 or not 0 <= rank < n_workers:
        raise ConfigError(f"Invalid worker rank {rank} of {n_workers}")
    if n_items < n_workers:
        raise ConfigError(f"Cannot shard {n_items} rows across {n_workers} workers")
    per = n_items // n_workers
    start = rank * per
    return start, start + per


class TrialSequencer:
    """Decides which image of the flat list each trial presents."""

    def __init__(self, n_items: int, start_row: int = 0, end_row: int = 0, sequential: bool = False,
                 n_trials: int = 0, n_epochs: int = 0, rng: Optional[np.random.Generator] = None):
        self.n_items = n_items
        self.start_row = start_row
        self.end_row = end_row
        self.sequential = sequential
        self.rng = rng if rng is not None else np.random.default_rng()
        self.counters = TrialCounters(n_trials=n_trials, n_epochs=n_epochs)
        self.img_idxs = np.arange(0)
        self.shuffle = np.arange(0)
        self.shuffle_count = 0

    @property
    def row(self):
        return self.counters.row

    def init(self, run: int = 0):
        self.counters.init(run)
        if self.end_row > 0:
            end = min(self.end_row, self.n_items)
            self.img_idxs = np.arange(self.start_row, end)
        else:
            self.img_idxs = np.arange(self.n_items)
        # permutation covers the entire list so shuffled lookups stay in range for any shard
        if self.sequential:
            self.shuffle = np.arange(self.n_items)
        else:
            self.shuffle = self.rng.permutation(self.n_items)
        self.shuffle_count = 0
        self.row.max = len(self.img_idxs)

    def new_shuffle(self):
        if not self.sequential:
            self.rng.shuffle(self.shuffle)
        self.shuffle_count += 1

    def step(self) -> FrozenSet[str]:
        rolled = self.counters.tick()
        if "row" in rolled:
            self.new_shuffle()
        return rolled

    def current_index(self) -> int:
        """Index into the flat image list for the current row."""
        size = len(self.img_idxs)
        if self.row.cur >= size:
            self.row.max = size
            self.row.cur = 0
            self.new_shuffle()
        r = max(self.row.cur, 0)
        i = int(self.img_idxs[r])
        if not self.sequential:
            i = int(self.shuffle[i])
        return i
