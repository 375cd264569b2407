"""Tests for RankingLoss forward/backward numerics."""

import logging

import numpy as np
import pytest

from pairrank.blob import Blob
from pairrank.config import LayerParameter
from pairrank.errors import StaleStateError
from pairrank.layers import RankingLoss, make_top

logger = logging.getLogger(__name__)


def make_bottom(score_a, score_b, ref_a, ref_b):
    return [Blob.from_array(np.asarray(v, dtype=np.float64)) for v in (score_a, score_b, ref_a, ref_b)]


@pytest.fixture
def layer():
    return RankingLoss(LayerParameter(type='RankingLoss', margin=0.3))


def run(layer, bottom, loss_weight=1.0, propagate_down=(True, True)):
    top = make_top()
    layer.setup(bottom, top)
    loss = layer.forward(bottom, top)
    top[0].diff[0] = loss_weight
    layer.backward(top, list(propagate_down), bottom)
    return loss, top


def test_worked_example(layer):
    """Example 0 satisfies the margin, example 1 is penalised by the full margin."""
    bottom = make_bottom([1, 0], [0, 0], [1, 0], [0, 1])
    loss, top = run(layer, bottom)

    assert loss == pytest.approx(0.15)
    assert top[0].data[0] == pytest.approx(0.15)
    np.testing.assert_allclose(layer.difference, [1.0, 0.0])
    np.testing.assert_allclose(layer.signed_distance, [1.0, 0.0])

    # Example 1 sits in the b-above-a band: score a gets +alpha with alpha = -lambda / N
    np.testing.assert_allclose(bottom[0].flat_diff(), [0.0, -0.5])
    np.testing.assert_allclose(bottom[1].flat_diff(), [0.0, 0.5])


def test_signed_distance_zones(layer):
    bottom = make_bottom([2, 2, 2], [1, 1, 1], [1.0, 0.0, 0.5], [0.0, 1.0, 0.6])
    run(layer, bottom)

    # a above b, b above a, within the margin
    np.testing.assert_allclose(layer.signed_distance, [1.0, -1.0, 0.0])


def test_within_margin_loss_equals_margin(layer):
    """Every pair inside the margin band contributes exactly the margin."""
    rng = np.random.default_rng(0)
    ref_a = rng.uniform(0, 1, size=16)
    ref_b = ref_a + rng.uniform(-0.29, 0.29, size=16)
    bottom = make_bottom(rng.normal(size=16), rng.normal(size=16), ref_a, ref_b)

    loss, _ = run(layer, bottom)

    assert loss == pytest.approx(0.3)
    assert np.all(bottom[0].flat_diff() == 0)
    assert np.all(bottom[1].flat_diff() == 0)


def test_loss_zero_when_margin_met(layer):
    bottom = make_bottom([1.0, -1.0], [0.0, 0.0], [1.0, 0.0], [0.0, 1.0])
    loss, _ = run(layer, bottom)

    assert loss == 0.0
    assert np.all(bottom[0].flat_diff() == 0)


@pytest.mark.parametrize('seed', [0, 1, 2, 3])
def test_loss_non_negative(layer, seed):
    rng = np.random.default_rng(seed)
    bottom = make_bottom(*(rng.normal(scale=2.0, size=32) for _ in range(4)))
    loss, _ = run(layer, bottom)
    assert loss >= 0.0


def test_gradients_antisymmetric(layer):
    rng = np.random.default_rng(7)
    bottom = make_bottom(*(rng.normal(size=20) for _ in range(4)))
    run(layer, bottom)
    np.testing.assert_allclose(bottom[0].flat_diff(), -bottom[1].flat_diff())


def test_loss_weight_scales_gradient(layer):
    bottom = make_bottom([1, 0], [0, 0], [1, 0], [0, 1])
    run(layer, bottom, loss_weight=2.0)
    np.testing.assert_allclose(bottom[0].flat_diff(), [0.0, -1.0])
    np.testing.assert_allclose(bottom[1].flat_diff(), [0.0, 1.0])


def test_b_above_band_gradient_direction(layer):
    """
    In the b-above-a band score a gets +alpha, and alpha is negative there, so
    the step matches the a-above-b band rather than the forward derivative.
    """
    bottom = make_bottom([0.0], [0.0], [0.0], [1.0])
    loss, _ = run(layer, bottom)

    assert layer.signed_distance[0] == pytest.approx(0.0)
    assert loss == pytest.approx(0.3)
    assert bottom[0].flat_diff()[0] == pytest.approx(-1.0)
    assert bottom[1].flat_diff()[0] == pytest.approx(1.0)


def test_backward_direction_uses_strict_reference_comparison():
    """
    With a negative margin, a pair can fall in the 'a above b' band while
    ref_a < ref_b. The gradient direction follows ref_a > ref_b, not the band.
    """
    layer = RankingLoss(LayerParameter(type='RankingLoss', margin=-0.5))
    bottom = make_bottom([0.0], [1.0], [0.2], [0.5])
    loss, _ = run(layer, bottom)

    assert layer.signed_distance[0] == pytest.approx(-1.0)
    assert loss == pytest.approx(0.5)
    assert bottom[0].flat_diff()[0] == pytest.approx(1.0)
    assert bottom[1].flat_diff()[0] == pytest.approx(-1.0)


def test_only_requested_inputs_written(layer):
    bottom = make_bottom([1, 0], [0, 0], [1, 0], [0, 1])
    bottom[1].diff[...] = 7.0
    run(layer, bottom, propagate_down=(True, False))

    np.testing.assert_allclose(bottom[0].flat_diff(), [0.0, -0.5])
    np.testing.assert_allclose(bottom[1].flat_diff(), [7.0, 7.0])


def test_reference_inputs_never_receive_gradient(layer, caplog):
    bottom = make_bottom([1, 0], [0, 0], [1, 0], [0, 1])
    for blob in bottom[2:]:
        blob.diff[...] = 3.0

    with caplog.at_level(logging.WARNING, logger='pairrank'):
        run(layer, bottom, propagate_down=(False, False, True, True))

    assert np.all(bottom[2].diff == 3.0)
    assert np.all(bottom[3].diff == 3.0)
    assert np.all(bottom[0].diff == 0.0)
    assert 'reference input 2' in caplog.text


def test_forward_idempotent(layer):
    bottom = make_bottom([0.3, -0.2, 1.5], [0.1, 0.4, 1.0], [1, 0, 0.5], [0, 1, 0.5])
    top = make_top()
    layer.setup(bottom, top)

    first = layer.forward(bottom, top)
    difference = layer.difference.copy()
    signed_distance = layer.signed_distance.copy()
    second = layer.forward(bottom, top)

    assert first == second
    np.testing.assert_array_equal(layer.difference, difference)
    np.testing.assert_array_equal(layer.signed_distance, signed_distance)


def test_backward_before_forward_raises(layer):
    bottom = make_bottom([1], [0], [1], [0])
    top = make_top()
    layer.setup(bottom, top)
    with pytest.raises(StaleStateError):
        layer.backward(top, [True, True], bottom)


def test_nan_propagates(layer):
    bottom = make_bottom([np.nan, 0.0], [0.0, 0.0], [1.0, 0.0], [0.0, 1.0])
    loss, _ = run(layer, bottom)
    assert np.isnan(loss)


def test_empty_batch(layer):
    bottom = make_bottom([], [], [], [])
    loss, _ = run(layer, bottom)
    assert loss == 0.0
    assert bottom[0].flat_diff().shape == (0,)


def test_float32_inputs():
    layer = RankingLoss(LayerParameter(type='RankingLoss', margin=0.3))
    bottom = [Blob.from_array(np.asarray(v, dtype=np.float32))
              for v in ([1, 0], [0, 0], [1, 0], [0, 1])]
    loss, _ = run(layer, bottom)

    assert loss == pytest.approx(0.15, rel=1e-6)
    assert layer.difference.dtype == np.float32
    np.testing.assert_allclose(bottom[0].flat_diff(), [0.0, -0.5], rtol=1e-6)
