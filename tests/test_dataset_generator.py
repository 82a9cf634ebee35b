import os

import pytest
from PIL import Image

from lvis.dataset_generator import SHAPES, generate_dataset


def test_writes_category_tree(tmp_path):
    cats = generate_dataset(str(tmp_path), num_cats=2, items_per_cat=3, views_per_item=2, size=32, seed=0)
    assert cats == SHAPES[:2]
    for cat in cats:
        files = sorted(os.listdir(tmp_path / cat))
        assert len(files) == 6
        assert files[0] == f"{cat}000_0.png"
        with Image.open(tmp_path / cat / files[0]) as im:
            assert im.size == (32, 32)


def test_too_many_categories(tmp_path):
    with pytest.raises(ValueError):
        generate_dataset(str(tmp_path), num_cats=len(SHAPES) + 1, items_per_cat=1, views_per_item=1)
