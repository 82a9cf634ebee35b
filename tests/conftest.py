import types

import pytest

from lvis import config_test
from lvis.dataset_generator import generate_dataset


@pytest.fixture
def image_root(tmp_path):
    """3 categories x 4 single-view items."""
    root = tmp_path / "images"
    generate_dataset(str(root), num_cats=3, items_per_cat=4, views_per_item=1, size=128, seed=1)
    return root


@pytest.fixture
def multi_view_root(tmp_path):
    """3 categories x 4 items x 2 views, for item-level train / test splits."""
    root = tmp_path / "multiview"
    generate_dataset(str(root), num_cats=3, items_per_cat=4, views_per_item=2, size=64, seed=2)
    return root


@pytest.fixture
def cfg(tmp_path, image_root):
    values = {k: v for k, v in vars(config_test).items() if k.isupper()}
    values.update(
        IMAGE_PATH=str(image_root),
        IMAGE_FILE="fixture",
        CACHE_DIR=str(tmp_path / "cache") + "/",
        N_TEST_PER_CAT=0,
        SEQUENTIAL=True,
        N_TRIALS=12,
        N_EPOCHS=2,
        OUT_SIZE=(2, 2),
        N_OUT_PER=2,
    )
    return types.SimpleNamespace(**values)
