import numpy as np
import pytest

from lvis.classify import ClassResult, ConfusionMatrix, EpochStats, closest_rows, inv_correlation, out_err
from lvis.patterns import OutputPatterns


@pytest.fixture
def localist():
    return OutputPatterns(["a", "b", "c", "d"], out_size=(2, 2), n_out_per=2).config_localist()


def test_inv_correlation():
    a = np.array([1.0, 2.0, 3.0])
    assert inv_correlation(a, a) == pytest.approx(0.0)
    assert inv_correlation(a, -a) == pytest.approx(2.0)
    assert inv_correlation(a, np.ones(3)) == 1.0


def test_round_trip_localist(localist):
    for k in range(4):
        res = out_err(localist.pattern(k), localist.table, k)
        assert res == ClassResult(k, 0.0, 0.0)


def test_round_trip_random(tmp_path):
    pats = OutputPatterns([f"c{i}" for i in range(10)], out_size=(10, 10)).config_random(
        0.2, 0.5, str(tmp_path), rng=np.random.default_rng(3))
    for k in range(10):
        assert out_err(pats.pattern(k), pats.table, k).best == k


def test_wrong_answer_scores_error(localist):
    res = out_err(localist.pattern(1), localist.table, 2)
    assert res.best == 1 and res.err == 1.0 and res.err2 == 1.0


def test_top2_between_two_patterns(localist):
    probe = 0.5 * (localist.pattern(1) + localist.pattern(3))
    for true_idx in (1, 3):
        res = out_err(probe, localist.table, true_idx)
        assert res.err2 == 0.0
    # ties keep category order
    assert out_err(probe, localist.table, 3) == ClassResult(1, 1.0, 0.0)
    assert out_err(probe, localist.table, 0).err2 == 1.0


def test_closest_rows_sorted_and_stable(localist):
    probe = localist.pattern(2)
    dsts = closest_rows(probe, localist.table)
    assert [i for _, i in dsts] == [2, 0, 1, 3]
    assert [d for d, _ in dsts] == sorted(d for d, _ in dsts)


def test_probe_size_mismatch(localist):
    with pytest.raises(ValueError):
        closest_rows(np.zeros(5), localist.table)


def test_confusion_matrix():
    cm = ConfusionMatrix(["a", "b"])
    cm.incr(0, 0)
    cm.incr(0, 1)
    cm.incr(1, 1)
    cm.incr(1, 7)  # out of range responses are not counted
    np.testing.assert_allclose(cm.probs(), [[0.5, 0.5], [0.0, 1.0]])
    assert cm.accuracy() == {"a": 0.5, "b": 1.0}
    d = cm.to_dict()
    assert d["labels"] == ["a", "b"] and d["counts"] == [[1, 1], [0, 1]]
    other = ConfusionMatrix(["a", "b"])
    other.incr(0, 0)
    cm.merge(other)
    assert cm.counts[0, 0] == 2
    assert list(cm.to_frame().columns) == ["a", "b"]


def test_epoch_stats():
    stats = EpochStats()
    stats.add(ClassResult(0, 1.0, 0.0))
    stats.add(ClassResult(1, 0.0, 0.0))
    row = stats.end_epoch(3)
    assert row == {"epoch": 3, "trials": 2, "pct_err": 0.5, "pct_err2": 0.0}
    assert stats.n == 0 and stats.history == [row]
