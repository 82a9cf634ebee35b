"""Category-organized image lists with a reproducible train / test split.

Each sub-directory of the image root is one category. Filenames are kept
relative to their category directory, and the flat lists use the
``cat/filename`` form so a single string addresses an image from the root.
"""
import json
import os
from typing import Dict, List, Optional

import numpy as np

from .errors import ConfigError
from .logger import log


def save_list_json(items, filename: str) -> None:
    with open(filename, 'w', encoding='utf-8') as f:
        json.dump(items, f, indent=2)


def open_list_json(filename: str):
    with open(filename, 'r', encoding='utf-8') as f:
        return json.load(f)


class ImageCatalog:
    """Builds and holds the category -> files lists for one image set."""

    def __init__(self, path: str = "", exts: Optional[List[str]] = None, split_char: str = "_",
                 split_by_item: bool = True, n_test_per_cat: int = 2, seed: int = 73):
        self.path = path
        self.exts = [e.lower() for e in (exts or [".png"])]
        self.split_char = split_char
        self.split_by_item = split_by_item
        self.n_test_per_cat = n_test_per_cat
        self.seed = seed

        self.cats: List[str] = []
        self.cat_map: Dict[str, int] = {}
        self.images_all: List[List[str]] = []
        self.images_train: List[List[str]] = []
        self.images_test: List[List[str]] = []
        self.flat_all: List[str] = []
        self.flat_train: List[str] = []
        self.flat_test: List[str] = []

    def make_cat_map(self):
        self.cat_map = {c: i for i, c in enumerate(self.cats)}

    def item_name(self, filename: str) -> str:
        """Object identity of a render: the stem up to its last split char."""
        stem = os.path.splitext(filename)[0]
        if self.split_char and self.split_char in stem:
            return stem.rsplit(self.split_char, 1)[0]
        return stem

    def open_path(self, path: Optional[str] = None) -> None:
        """Scans the image root and splits each category into train and test."""
        if path is not None:
            self.path = path
        if not os.path.isdir(self.path):
            raise ConfigError(f"Image path not found: {self.path}")

        rng = np.random.default_rng(self.seed)
        self.cats = sorted(d for d in os.listdir(self.path) if os.path.isdir(os.path.join(self.path, d)))
        self.make_cat_map()
        self.images_train, self.images_test = [], []
        for cat in self.cats:
            files = sorted(f for f in os.listdir(os.path.join(self.path, cat))
                           if os.path.splitext(f)[1].lower() in self.exts)
            if self.split_by_item:
                units = sorted({self.item_name(f) for f in files})
            else:
                units = files
            held_out = set()
            if self.n_test_per_cat > 0 and len(units) > 1:
                ntest = min(self.n_test_per_cat, len(units) - 1)
                held_out = {units[i] for i in rng.permutation(len(units))[:ntest]}
            train, test = [], []
            for f in files:
                unit = self.item_name(f) if self.split_by_item else f
                (test if unit in held_out else train).append(f)
            self.images_train.append(train)
            self.images_test.append(test)
        self.to_train_all()
        self.flats()
        log(f"Scanned {self.path}: {len(self.cats)} categories, "
            f"{len(self.flat_train)} train / {len(self.flat_test)} test images")

    def to_train_all(self):
        self.images_all = [trn + tst for trn, tst in zip(self.images_train, self.images_test)]

    def flats(self):
        """Rebuilds the flat cat/filename lists from the per-category lists."""
        def flatten(per_cat):
            return [f"{cat}/{f}" for cat, files in zip(self.cats, per_cat) for f in files]
        self.flat_train = flatten(self.images_train)
        self.flat_test = flatten(self.images_test)
        self.flat_all = flatten(self.images_all)

    @staticmethod
    def cat(filename: str) -> str:
        return filename.split("/", 1)[0]

    def cat_idx(self, filename: str) -> int:
        return self.cat_map[self.cat(filename)]

    def _keep(self, keep):
        idxs = [i for i, c in enumerate(self.cats) if keep(c)]
        self.cats = [self.cats[i] for i in idxs]
        self.images_train = [self.images_train[i] for i in idxs]
        self.images_test = [self.images_test[i] for i in idxs]
        self.make_cat_map()
        self.to_train_all()
        self.flats()

    def delete_cats(self, names: List[str]):
        drop = set(names)
        self._keep(lambda c: c not in drop)

    def select_cats(self, names: List[str]):
        keep = set(names)
        self._keep(lambda c: c in keep)

    # --- cached lists ---

    def cache_files(self, image_file: str, cache_dir: str = ""):
        cats = os.path.join(cache_dir, f"{image_file}_cats.json")
        trn = os.path.join(cache_dir, f"{image_file}_ntest{self.n_test_per_cat}_trn.json")
        tst = os.path.join(cache_dir, f"{image_file}_ntest{self.n_test_per_cat}_tst.json")
        return cats, trn, tst

    def save_config(self, image_file: str, cache_dir: str = ""):
        if cache_dir:
            os.makedirs(cache_dir, exist_ok=True)
        cats, trn, tst = self.cache_files(image_file, cache_dir)
        save_list_json(self.cats, cats)
        save_list_json(self.images_test, tst)
        save_list_json(self.images_train, trn)

    def open_config(self, image_file: str, cache_dir: str = "") -> bool:
        """Loads cached lists; returns False when no cache exists for this configuration."""
        cats, trn, tst = self.cache_files(image_file, cache_dir)
        if not os.path.exists(tst):
            return False
        self.cats = open_list_json(cats)
        self.images_test = open_list_json(tst)
        self.images_train = open_list_json(trn)
        self.make_cat_map()
        self.to_train_all()
        self.flats()
        return True

    def image_list(self, test: bool = False) -> List[str]:
        return self.flat_test if test else self.flat_train

    def full_path(self, filename: str) -> str:
        return os.path.join(self.path, filename)


def load_catalog(cfg) -> ImageCatalog:
    """Cache-first catalog construction from a config module."""
    if not os.path.isdir(cfg.IMAGE_PATH):
        raise ConfigError(f"Image path not found: {cfg.IMAGE_PATH}")
    catalog = ImageCatalog(cfg.IMAGE_PATH, cfg.IMAGE_EXTS, cfg.SPLIT_CHAR, cfg.SPLIT_BY_ITEM,
                           cfg.N_TEST_PER_CAT, cfg.SEED)
    if catalog.open_config(cfg.IMAGE_FILE, cfg.CACHE_DIR):
        log(f"Loaded cached image lists for '{cfg.IMAGE_FILE}'")
    else:
        catalog.open_path()
        catalog.save_config(cfg.IMAGE_FILE, cfg.CACHE_DIR)
    if cfg.SELECT_CATS:
        catalog.select_cats(cfg.SELECT_CATS)
    if cfg.DELETE_CATS:
        catalog.delete_cats(cfg.DELETE_CATS)
    return catalog
