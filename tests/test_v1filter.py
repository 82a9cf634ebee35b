import numpy as np
import pytest

from lvis.filterbank import FilterBank
from lvis.v1filter import (KWTA, V1Img, Vis, dog_filter, fade_weights, gabor_filters, line_offset,
                           required_pad)


@pytest.fixture(scope="module")
def bank():
    return FilterBank()


def test_gabor_lobes_are_balanced():
    filters = gabor_filters(12, n_angles=4)
    assert filters.shape == (4, 12, 12)
    for f in filters:
        assert f[f > 0].sum() == pytest.approx(1.0, abs=1e-5)
        assert f[f < 0].sum() == pytest.approx(-1.0, abs=1e-5)


def test_dog_is_zero_sum():
    assert dog_filter(16).sum() == pytest.approx(0.0, abs=1e-6)


def test_line_offsets():
    assert [line_offset(a, 4) for a in range(4)] == [(0, 1), (1, 1), (1, 0), (1, -1)]


def test_fade_weights_ramp():
    w = fade_weights(4, 4, 2)
    assert w.shape == (8, 8)
    assert w[2:6, 2:6].max() == 0
    assert w[0, 0] == 1.0 and w[1, 3] == 0.5


def test_required_pad():
    assert required_pad(0, 24, 8) == 8
    assert required_pad(0, 16, 16) == 0
    assert required_pad(32, 12, 4) == 0


def test_kwta_keeps_only_strongest():
    g = np.zeros((2, 2, 2, 2), dtype=np.float32)
    g[0, 0, 0, 0] = 1.0
    g[0, 0, 1, 1] = 0.2  # same pool, loses to the pool winner
    act = np.asarray(KWTA(layer_pct=0.125, pool_k=1).apply(g))
    assert act[0, 0, 0, 0] > 0.9
    assert np.count_nonzero(act) == 1


def test_default_channels_and_shapes(bank):
    assert bank.names() == ["V1l16", "V1m16", "V1l8", "V1m8", "V1Cl16", "V1Cm16", "V1Cl8", "V1Cm8"]
    assert bank.tensor("V1l16").shape == (8, 8, 5, 4)
    assert bank.tensor("V1m16").shape == (16, 16, 5, 4)
    assert bank.tensor("V1l8").shape == (8, 8, 5, 4)
    assert bank.tensor("V1m8").shape == (16, 16, 5, 4)
    assert bank.tensor("V1Cl16").shape == (8, 8, 2, 2)
    assert bank.tensor("V1Cm16").shape == (16, 16, 2, 2)
    assert bank.tensor("V1Cl8").shape == (8, 8, 2, 2)
    assert bank.tensor("V1Cm8").shape == (16, 16, 2, 2)
    with pytest.raises(KeyError):
        bank.tensor("V1h16")


def test_channel_flags():
    assert "V1h16" in FilterBank(high16=True, color_dog=False).names()
    assert FilterBank(color_dog=False).names() == ["V1l16", "V1m16", "V1l8", "V1m8"]


def test_uniform_image_gives_no_activity(bank):
    bank.filter(np.full((128, 128, 3), 0.5, dtype=np.float32))
    for name in bank.names():
        np.testing.assert_allclose(bank.tensor(name), 0.0, atol=1e-4)


def test_vertical_edge_drives_vertical_units(bank):
    img = np.zeros((128, 128, 3), dtype=np.float32)
    img[:, 64:] = 1.0
    bank.filter(img)
    v1 = bank.tensor("V1m16")
    center = v1[4:12, :, 3:5]  # pooled simple cells, away from the top / bottom fade
    assert center[..., 2].max() > 0.1
    assert center[..., 0].max() < 0.1 * center[..., 2].max()


def test_resizes_to_bank_geometry(bank):
    img = np.random.default_rng(0).random((64, 96, 3)).astype(np.float32)
    bank.filter(img)
    assert bank.img.lms.shape == (3, 128 + 2 * bank.pad, 128 + 2 * bank.pad)
    assert np.isfinite(bank.tensor("V1m8")).all()


def test_color_blobs_respond_to_color_edges(bank):
    img = np.zeros((128, 128, 3), dtype=np.float32)
    img[:, :64] = (1.0, 0.0, 0.0)
    img[:, 64:] = (0.0, 1.0, 0.0)
    bank.filter(img)
    assert bank.tensor("V1Cm16").max() > 0


def test_parallel_matches_serial():
    img = np.random.default_rng(1).random((128, 128, 3)).astype(np.float32)
    serial = FilterBank()
    par = FilterBank(parallel=True)
    serial.filter(img)
    par.filter(img)
    for name in serial.names():
        np.testing.assert_allclose(par.tensor(name), serial.tensor(name), atol=1e-6)
    par.close()


def test_vis_output_in_unit_range():
    img = V1Img((128, 128))
    vis = Vis(0, 12, 4, img)
    img.set_image(np.random.default_rng(2).random((128, 128, 3)).astype(np.float32), vis.pad)
    out = vis.filter()
    assert out.min() >= 0 and out.max() < 1.0
