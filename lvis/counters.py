from typing import FrozenSet, Tuple

LEVELS = ("run", "epoch", "trial", "row")


class Counter:
    """One level of the run / epoch / trial / row hierarchy."""

    def __init__(self, max: int = 0):
        self.cur = 0
        self.prv = -1
        self.max = max
        self.chg = False

    def init(self):
        self.cur = 0
        self.prv = -1
        self.chg = False

    def incr(self) -> bool:
        """Advances by one; returns True when cur reached max and wrapped to 0."""
        self.prv = self.cur
        self.cur += 1
        self.chg = True
        if self.max > 0 and self.cur >= self.max:
            self.cur = 0
            return True
        return False

    def same(self):
        self.chg = False

    def query(self) -> Tuple[int, int, bool]:
        return self.cur, self.prv, self.chg

    def __repr__(self):
        return f"Counter(cur={self.cur}, max={self.max})"


class TrialCounters:
    """Run > Epoch > Trial counters plus the Row counter that walks the image list.

    Row advances alongside Trial every tick; its wrap is reported so the owner
    can reshuffle. Trial wraps carry into Epoch, and Epoch (when bounded)
    carries into Run.
    """

    def __init__(self, n_trials: int = 0, n_epochs: int = 0, n_rows: int = 0):
        self.run = Counter()
        self.epoch = Counter(n_epochs)
        self.trial = Counter(n_trials)
        self.row = Counter(n_rows)

    def init(self, run: int = 0):
        for ctr in (self.run, self.epoch, self.trial):
            ctr.init()
        self.run.cur = run
        self.row.init()
        self.row.cur = -1  # so the first tick lands on row 0

    def tick(self) -> FrozenSet[str]:
        """Advances one trial and returns the names of the levels that rolled over."""
        rolled = set()
        self.epoch.same()
        if self.row.incr():
            rolled.add("row")
        if self.trial.incr():
            rolled.add("trial")
            if self.epoch.incr():
                rolled.add("epoch")
                self.run.incr()
        return frozenset(rolled)

    def level(self, name: str) -> Counter:
        if name not in LEVELS:
            raise ValueError(f"Unknown counter level: {name}")
        return getattr(self, name)
