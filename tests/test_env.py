import os

import numpy as np
import pytest

from lvis import env as env_module
from lvis import logger
from lvis.env import ImagesEnv, Trial, configure, step


@pytest.fixture
def env(cfg):
    return configure(cfg)


def test_end_to_end_sequential_pass(env):
    pats = env.patterns
    assert pats.table.shape == (3, 2, 2, 2, 1)
    assert pats.values.sum(axis=0).tolist() == [1, 1, 1, 1, 1, 1, 0, 0]

    seen = []
    for _ in range(12):
        assert env.step()
        seen.append(env.cur_img)
        cat, idx = env.current_label()
        np.testing.assert_array_equal(env.state("Output"), pats.pattern(idx))
        assert env.catalog.cats[idx] == cat
    assert seen == env.images
    assert len(set(seen)) == 12
    assert env.sequencer.shuffle_count == 0

    assert env.step()
    assert env.sequencer.shuffle_count == 1
    assert env.cur_img == env.images[0]


def test_feature_state_is_filled(env):
    env.step()
    v1 = env.state("V1m16")
    assert v1.shape == (16, 16, 5, 4)
    assert v1.max() > 0
    with pytest.raises(KeyError):
        env.state("Nope")


def test_counters_and_trial_snapshot(env):
    trial = step(env)
    assert isinstance(trial, Trial)
    assert trial.row == 0 and trial.index == 0
    assert trial.cat == "circle" and trial.cat_idx == 0
    assert trial.filename == env.images[0]
    assert env.counter("trial") == (1, 0, True)
    assert abs(trial.params.trans_x) <= env.augmenter.trans_max[0]


def test_epoch_advances_after_trials(env):
    for _ in range(12):
        env.step()
    cur, prv, chg = env.counter("epoch")
    assert (cur, chg) == (1, True)
    env.step()
    assert env.counter("epoch")[2] is False


def test_out_err_against_current_target(env):
    env.step()
    res = env.out_err(env.state("Output"))
    assert res.best == env.cur_cat_idx
    assert res.err == 0.0


def test_missing_image_voids_trial(cfg, capsys):
    env = configure(cfg)
    os.remove(env.catalog.full_path(env.images[0]))
    assert env.step() is False
    assert "WARNING" in capsys.readouterr().out
    assert step(env) is not None


def test_sharded_workers_cover_disjoint_rows(cfg):
    seen = []
    for rank in range(2):
        env = configure(cfg, rank=rank, n_workers=2)
        for _ in range(6):
            env.step()
            seen.append(env.cur_idx)
    assert sorted(seen) == list(range(12))


def test_test_mode_walks_test_list(cfg):
    cfg.N_TEST_PER_CAT = 1
    cfg.IMAGE_FILE = "fixture_split"
    env = configure(cfg, test=True)
    assert env.test and env.name == "Test"
    assert len(env.images) == 3
    assert env.sequencer.counters.trial.max == 3
    assert isinstance(env, ImagesEnv)


def shard_pass(envs, n_steps):
    seen = []
    for env in envs:
        for _ in range(n_steps):
            env.sequencer.step()
            seen.append(env.sequencer.current_index())
    return seen


def test_shuffled_shards_partition_each_pass(cfg):
    cfg.SEQUENTIAL = False
    envs = [configure(cfg, rank=rank, n_workers=2) for rank in range(2)]
    np.testing.assert_array_equal(envs[0].sequencer.shuffle, envs[1].sequencer.shuffle)
    assert sorted(shard_pass(envs, 6)) == list(range(12))
    # the row wrap reshuffles every rank the same way
    assert sorted(shard_pass(envs, 6)) == list(range(12))
    assert [env.sequencer.shuffle_count for env in envs] == [1, 1]
    np.testing.assert_array_equal(envs[0].sequencer.shuffle, envs[1].sequencer.shuffle)


def test_jitter_differs_per_rank(cfg):
    cfg.SEQUENTIAL = False
    a, b = (configure(cfg, rank=rank, n_workers=2) for rank in range(2))
    assert a.augmenter.sample(a.rng) != b.augmenter.sample(b.rng)


def test_verbose_follows_active_config(cfg, monkeypatch, capsys):
    monkeypatch.setattr(logger, "VERBOSE", False)
    cfg.VERBOSE = True
    configure(cfg)
    assert logger.is_verbose()
    logger.debug("trial detail")
    assert "trial detail" in capsys.readouterr().out
    cfg.VERBOSE = False
    configure(cfg)
    assert not logger.is_verbose()


def test_quiet_step_skips_debug_formatting(env, monkeypatch):
    monkeypatch.setattr(logger, "VERBOSE", False)

    def fail(message):
        raise AssertionError(f"debug called: {message}")

    monkeypatch.setattr(env_module, "debug", fail)
    assert env.step()
