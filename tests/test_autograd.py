"""Tests for the torch autograd bridge."""

import pytest
import torch

from pairrank.autograd import PairRankingLoss


def scores(values):
    return torch.tensor(values, dtype=torch.float64, requires_grad=True)


def refs(values):
    return torch.tensor(values, dtype=torch.float64)


def test_ranking_loss_worked_example():
    criterion = PairRankingLoss('RankingLoss', margin=0.3)
    score_a, score_b = scores([1.0, 0.0]), scores([0.0, 0.0])

    loss = criterion(score_a, score_b, refs([1.0, 0.0]), refs([0.0, 1.0]))
    loss.backward()

    assert loss.item() == pytest.approx(0.15)
    assert loss.dtype == torch.float64
    torch.testing.assert_close(score_a.grad, refs([0.0, -0.5]))
    torch.testing.assert_close(score_b.grad, refs([0.0, 0.5]))


def test_loss_weight():
    criterion = PairRankingLoss('RankingLoss', margin=0.3, loss_weight=2.0)
    score_a, score_b = scores([1.0, 0.0]), scores([0.0, 0.0])

    loss = criterion(score_a, score_b, refs([1.0, 0.0]), refs([0.0, 1.0]))
    loss.backward()

    assert loss.item() == pytest.approx(0.3)
    torch.testing.assert_close(score_a.grad, refs([0.0, -1.0]))


def test_upstream_gradient_scales():
    criterion = PairRankingLoss('RankingLoss', margin=0.3)
    score_a, score_b = scores([1.0, 0.0]), scores([0.0, 0.0])

    loss = criterion(score_a, score_b, refs([1.0, 0.0]), refs([0.0, 1.0]))
    (3.0 * loss).backward()

    torch.testing.assert_close(score_a.grad, refs([0.0, -1.5]))


def test_real_ranking_matches_native_autograd():
    """The layer gradient equals torch autograd of the same loss written in torch."""
    torch.manual_seed(0)
    num = 48
    a_values = torch.randn(num, dtype=torch.float64)
    b_values = torch.randn(num, dtype=torch.float64)
    ref_a = torch.empty(num, dtype=torch.float64).uniform_(-200, 200)
    ref_b = torch.empty(num, dtype=torch.float64).uniform_(-200, 200)

    score_a, score_b = a_values.clone().requires_grad_(), b_values.clone().requires_grad_()
    loss = PairRankingLoss('RealRankingLoss', margin=0.3)(score_a, score_b, ref_a, ref_b)
    loss.backward()

    native_a, native_b = a_values.clone().requires_grad_(), b_values.clone().requires_grad_()
    a_above = torch.trunc(0.0125 * (ref_a - ref_b)) != 0
    difference = native_a - native_b
    signed_distance = torch.where(a_above, difference, -difference)
    native_loss = torch.clamp(0.3 - signed_distance, min=0.0).mean()
    native_loss.backward()

    assert loss.item() == pytest.approx(native_loss.item())
    torch.testing.assert_close(score_a.grad, native_a.grad)
    torch.testing.assert_close(score_b.grad, native_b.grad)


def test_column_shaped_scores():
    criterion = PairRankingLoss('RealRankingLoss', margin=0.3)
    score_a = torch.zeros(4, 1, dtype=torch.float64, requires_grad=True)
    score_b = torch.zeros(4, 1, dtype=torch.float64, requires_grad=True)

    loss = criterion(score_a, score_b, refs([[5.0]] * 4), refs([[5.0]] * 4))
    loss.backward()

    assert score_a.grad.shape == (4, 1)
    torch.testing.assert_close(score_a.grad, torch.full((4, 1), 0.25, dtype=torch.float64))


def test_only_requested_inputs_get_gradients():
    criterion = PairRankingLoss('RankingLoss', margin=0.3)
    score_a = scores([1.0, 0.0])
    score_b = refs([0.0, 0.0])

    loss = criterion(score_a, score_b, refs([1.0, 0.0]), refs([0.0, 1.0]))
    loss.backward()

    assert score_b.grad is None
    torch.testing.assert_close(score_a.grad, refs([0.0, -0.5]))


def test_batch_size_change_triggers_setup():
    criterion = PairRankingLoss('RankingLoss', margin=0.3)
    criterion(scores([1.0, 0.0]), scores([0.0, 0.0]), refs([1.0, 0.0]), refs([0.0, 1.0]))
    assert criterion.layer.num == 2

    score_a = scores([0.0, 0.0, 0.0])
    loss = criterion(score_a, scores([0.0, 0.0, 0.0]), refs([1.0, 1.0, 1.0]), refs([0.0, 0.0, 0.0]))
    loss.backward()

    assert criterion.layer.num == 3
    assert score_a.grad.shape == (3,)


def test_second_forward_before_backward_rejected():
    criterion = PairRankingLoss('RankingLoss', margin=0.3)
    first = criterion(scores([1.0, 0.0]), scores([0.0, 0.0]), refs([1.0, 0.0]), refs([0.0, 1.0]))
    criterion(scores([0.0, 1.0]), scores([0.0, 0.0]), refs([1.0, 0.0]), refs([0.0, 1.0]))

    with pytest.raises(RuntimeError, match="forward ran again"):
        first.backward()


def test_extra_repr():
    criterion = PairRankingLoss('RealRankingLoss', margin=0.5)
    assert 'RealRankingLoss' in repr(criterion)
    assert criterion.margin == 0.5
