"""
Pairwise ranking loss with a categorical reference comparison.

    E = 1/N * sum_n max(margin - d_n, 0)

where d_n = (a_n - b_n) if ref_a_n > ref_b_n + margin,
      d_n = (b_n - a_n) if ref_a_n < ref_b_n - margin,
      d_n = 0           otherwise (references too close to rank).

Pairs whose references lie within the margin of each other carry no ranking
signal: their penalty is the constant margin and their gradient is zero.
"""

from typing import Any

from pairrank.layers.base import LossLayer, SCORE_A
from pairrank.layers.registry import register_layer


@register_layer
class RankingLoss(LossLayer):
    """
    Margin ranking loss for siamese score pairs.

    Bottom blobs (each N x 1):
        0: scores a, 1: scores b, 2: reference for a, 3: reference for b
    Top blob: the scalar loss.
    """

    type_name = 'RankingLoss'

    def _signed_distance(self, difference: Any, ref_a: Any, ref_b: Any) -> Any:
        backend = self.backend
        zero = backend.full_like(difference, 0.0)
        a_above = ref_a > ref_b + self.margin
        b_above = ref_a < ref_b - self.margin
        return backend.where(
            a_above,
            difference,
            backend.where(b_above, backend.scale(-1.0, difference), zero),
        )

    def _input_gradient(self, index: int, scale: float, ref_a: Any, ref_b: Any) -> Any:
        """
        Gradient for one score input.

        alpha = sign * loss_weight / num, where sign = +1 if ref_a > ref_b else -1
        is a strict comparison that does not consult the margin. Active pairs in
        the a-above-b band get -alpha, pairs in the b-above-a band get +alpha,
        pairs inside the margin band get 0. The score b gradient is the
        negation of the score a gradient.

        For a non-negative margin the b-above-a band yields -loss_weight / num,
        the same direction as the a-above-b band, which is not the derivative
        of the forward penalty in that band.
        """
        backend = self.backend
        ones = backend.full_like(ref_a, 1.0)
        sign = backend.where(ref_a > ref_b, ones, backend.scale(-1.0, ones))
        alpha = backend.scale(scale, sign)

        zero = backend.full_like(alpha, 0.0)
        a_above = ref_a > ref_b + self.margin
        b_above = ref_a < ref_b - self.margin
        gradient = backend.where(a_above, backend.scale(-1.0, alpha), backend.where(b_above, alpha, zero))
        gradient = backend.where(self._hinge_active(), gradient, zero)

        if index == SCORE_A:
            return gradient
        return backend.scale(-1.0, gradient)
