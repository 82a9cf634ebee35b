"""Per-worker trial environment: sequencing, augmentation, filtering and targets."""
from typing import NamedTuple, Optional, Tuple

import numpy as np

from .augment import IDENTITY, AugmentParams, Augmenter
from .classify import ClassResult, out_err
from .filterbank import FilterBank
from .images import ImageCatalog, load_catalog
from .logger import debug, is_verbose, set_verbose, warn
from .patterns import OutputPatterns, build_patterns
from .sequencer import TrialSequencer, alloc_rows
from .transform import open_image, transform_image


class Trial(NamedTuple):
    run: int
    epoch: int
    trial: int
    row: int
    index: int
    filename: str
    cat: str
    cat_idx: int
    params: AugmentParams


class ImagesEnv:
    """Serves one augmented, filtered image and its target pattern per step.

    Feature tensors and the output pattern are overwritten in place on every
    step, so a caller has to be done with one trial before stepping again.
    """

    def __init__(self, catalog: ImageCatalog, bank: FilterBank, patterns: OutputPatterns, augmenter: Augmenter,
                 sequencer: TrialSequencer, test: bool = False, rng: Optional[np.random.Generator] = None,
                 name: str = "Train"):
        self.catalog = catalog
        self.bank = bank
        self.patterns = patterns
        self.augmenter = augmenter
        self.sequencer = sequencer
        self.test = test
        self.rng = rng if rng is not None else np.random.default_rng()
        self.name = name
        self.images = catalog.image_list(test)
        self.output = np.zeros(patterns.shape, dtype=np.float32)
        self.cur_idx = -1
        self.cur_img = ""
        self.cur_cat = ""
        self.cur_cat_idx = -1
        self.cur_params = IDENTITY

    def __repr__(self):
        return f"{self.cur_cat}:{self.cur_img}_{self.sequencer.counters.trial.cur}"

    def init(self, run: int = 0):
        self.sequencer.init(run)
        self.output.fill(0)

    def resolve_current(self) -> str:
        self.cur_idx = self.sequencer.current_index()
        self.cur_img = self.images[self.cur_idx]
        self.cur_cat = self.catalog.cat(self.cur_img)
        self.cur_cat_idx = self.catalog.cat_map[self.cur_cat]
        return self.cur_img

    def set_output(self, cat_idx: int):
        np.copyto(self.output, self.patterns.pattern(cat_idx))

    def filter_image(self) -> bool:
        fname = self.catalog.full_path(self.resolve_current())
        try:
            rgba = open_image(fname)
        except OSError as e:
            warn(f"{self.name}: could not open {fname}: {e}")
            return False
        rgba = transform_image(rgba, self.cur_params)
        self.bank.filter(rgba[..., :3])
        return True

    def step(self) -> bool:
        """Advances one trial; False when the trial's image could not be loaded."""
        self.sequencer.step()
        self.cur_params = self.augmenter.sample(self.rng)
        if not self.filter_image():
            return False
        self.set_output(self.cur_cat_idx)
        if is_verbose():
            debug(f"{self.name} {self!r} {self.cur_params}")
        return True

    def state(self, element: str) -> np.ndarray:
        if element == "Output":
            return self.output
        return self.bank.tensor(element)

    def current_label(self) -> Tuple[str, int]:
        return self.cur_cat, self.cur_cat_idx

    def counter(self, level: str) -> Tuple[int, int, bool]:
        return self.sequencer.counters.level(level).query()

    def out_err(self, probe: np.ndarray) -> ClassResult:
        return out_err(probe, self.patterns.table, self.cur_cat_idx)

    def trial(self) -> Trial:
        ctrs = self.sequencer.counters
        return Trial(ctrs.run.cur, ctrs.epoch.cur, ctrs.trial.cur, ctrs.row.cur, self.cur_idx,
                     self.cur_img, self.cur_cat, self.cur_cat_idx, self.cur_params)


def configure(cfg, test: bool = False, rank: int = 0, n_workers: int = 1,
              catalog: Optional[ImageCatalog] = None) -> ImagesEnv:
    """Builds a worker's environment from a config module.

    Output patterns and the shuffle order are seeded from the config alone,
    so every worker holds the same table and the same permutation and the
    row shards partition one pass. Only the jitter is seeded per rank.
    """
    set_verbose(cfg.VERBOSE)
    catalog = catalog if catalog is not None else load_catalog(cfg)
    images = catalog.image_list(test)
    start, end = alloc_rows(len(images), n_workers, rank) if n_workers > 1 else (0, 0)
    order_rng = np.random.default_rng(cfg.SEED)
    rng = np.random.default_rng(cfg.SEED + rank)
    if test:
        n_rows = (end - start) if end > 0 else len(images)
        n_trials, n_epochs = n_rows, 1
    else:
        n_trials, n_epochs = cfg.N_TRIALS, cfg.N_EPOCHS
    sequencer = TrialSequencer(len(images), start, end, cfg.SEQUENTIAL or test, n_trials, n_epochs,
                               order_rng)
    bank = FilterBank(cfg.IMAGE_SIZE, cfg.HIGH16, cfg.COLOR_DOG, cfg.PARALLEL_FILTERS)
    patterns = build_patterns(cfg, catalog.cats, np.random.default_rng(cfg.SEED))
    augmenter = Augmenter(cfg.TRANS_MAX, cfg.TRANS_SIGMA, cfg.SCALE_RANGE, cfg.ROTATE_MAX)
    env = ImagesEnv(catalog, bank, patterns, augmenter, sequencer, test, rng, "Test" if test else "Train")
    env.init(0)
    return env


def step(env: ImagesEnv) -> Optional[Trial]:
    """Functional form of ImagesEnv.step: the trial snapshot, or None when it was void."""
    if not env.step():
        return None
    return env.trial()
