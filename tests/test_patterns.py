import itertools
import os

import numpy as np
import pytest

from lvis.errors import ConfigError, PatternSearchError
from lvis.patterns import OutputPatterns, n_from_pct, permuted_binary_min_diff


def hamming(a, b):
    return int(np.count_nonzero((a > 0) != (b > 0)))


@pytest.mark.parametrize("pct, n, expected", [(0.2, 100, 20), (0.5, 5, 3), (0.5, 20, 10), (0.25, 6, 2)])
def test_n_from_pct_rounds_half_up(pct, n, expected):
    assert n_from_pct(pct, n) == expected


def test_localist_blocks():
    pats = OutputPatterns(["a", "b", "c"], out_size=(2, 2), n_out_per=2).config_localist()
    assert pats.table.shape == (3, 2, 2, 2, 1)
    assert pats.shape == (2, 2, 2, 1)
    assert pats.values.shape == (3, 8)
    for i in range(3):
        flat = pats.pattern(i).ravel()
        assert flat.sum() == 2
        np.testing.assert_array_equal(np.flatnonzero(flat), [2 * i, 2 * i + 1])
    # blocks do not overlap
    assert pats.values.sum(axis=0).max() == 1


def test_extra_rows_are_named():
    pats = OutputPatterns(["a", "b"], out_size=(3, 3), max_out=4)
    assert pats.max_out == 4
    assert pats.names == ["a", "b", "P002", "P003"]


def test_too_many_rows_for_layer():
    with pytest.raises(ConfigError):
        OutputPatterns([str(i) for i in range(5)], out_size=(2, 2))


def test_random_patterns_respect_min_diff(tmp_path):
    cats = [f"c{i}" for i in range(20)]
    pats = OutputPatterns(cats, out_size=(10, 10)).config_random(0.2, 0.5, str(tmp_path),
                                                                 rng=np.random.default_rng(0))
    vals = pats.values
    assert vals.shape == (20, 100)
    assert np.all(vals.sum(axis=1) == 20)
    for i, j in itertools.combinations(range(20), 2):
        assert hamming(vals[i], vals[j]) >= 10
    assert os.path.exists(tmp_path / "rndpats_10x10_n20_on20_df10.tsv")


def test_random_patterns_reload_from_cache(tmp_path):
    cats = ["a", "b", "c", "d"]
    first = OutputPatterns(cats, out_size=(5, 4)).config_random(0.2, 0.5, str(tmp_path),
                                                                rng=np.random.default_rng(1))
    second = OutputPatterns(cats, out_size=(5, 4)).config_random(0.2, 0.5, str(tmp_path),
                                                                 rng=np.random.default_rng(99))
    assert second.table.shape == (4, 4, 5)
    np.testing.assert_array_equal(first.table, second.table)
    assert second.names == cats


def test_impossible_min_diff_fails_fast():
    with pytest.raises(PatternSearchError):
        permuted_binary_min_diff(10, 4, 2, 2, np.random.default_rng(0), max_iters=5)


def test_pattern_search_error_is_config_error():
    assert issubclass(PatternSearchError, ConfigError)
