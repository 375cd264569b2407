"""
Pairwise ranking loss with a continuous reference comparison.

The reference difference ref_a - ref_b is rescaled by RESCALE and truncated
toward zero. Any non-zero truncated value (a reference gap of at least
1 / RESCALE = 80 units in either direction) ranks a above b; every pair
inside that gap, including small positive ones, ranks b above a. There is no
neutral band: every pair contributes a ranking signal.
"""

from typing import Any

import numpy as np

from pairrank.backends import ComputeBackend, NumpyBackend
from pairrank.layers.base import LossLayer, SCORE_A
from pairrank.layers.registry import register_layer

RESCALE = 0.0125


def _classify(backend: ComputeBackend, rescaled: Any) -> Any:
    """+1 where the truncated rescaled difference is non-zero, -1 elsewhere."""
    ones = backend.full_like(rescaled, 1.0)
    return backend.where(backend.trunc(rescaled) != 0, ones, backend.scale(-1.0, ones))


def classify_reference_difference(delta, rescale: float = RESCALE) -> np.ndarray:
    """
    Map reference differences to a ranking direction.

    Args:
        delta: ref_a - ref_b per example
        rescale: Factor applied before truncation

    Returns:
        +1.0 where |rescale * delta| >= 1 in either direction (a ranks above b),
        -1.0 otherwise
    """
    backend = NumpyBackend()
    delta = np.asarray(delta, dtype=np.float64)
    return _classify(backend, backend.scale(rescale, delta))


@register_layer
class RealRankingLoss(LossLayer):
    """
    Margin ranking loss driven by real-valued references.

    Bottom blobs (each N x 1):
        0: scores a, 1: scores b, 2: reference for a, 3: reference for b
    Top blob: the scalar loss.
    """

    type_name = 'RealRankingLoss'

    def _allocate(self, num: int, dtype) -> None:
        super()._allocate(num, dtype)
        self.rescaled = np.zeros(num, dtype=dtype)
        self.classification = np.zeros(num, dtype=dtype)

    def _signed_distance(self, difference: Any, ref_a: Any, ref_b: Any) -> Any:
        backend = self.backend
        rescaled = backend.scale(RESCALE, backend.sub(ref_a, ref_b))
        classification = _classify(backend, rescaled)

        self.rescaled[...] = backend.to_numpy(rescaled)
        self.classification[...] = backend.to_numpy(classification)

        return backend.where(classification > 0, difference, backend.scale(-1.0, difference))

    def _input_gradient(self, index: int, scale: float, ref_a: Any, ref_b: Any) -> Any:
        """Reuses the classification cached by forward rather than re-deriving it."""
        backend = self.backend
        sign = 1.0 if index == SCORE_A else -1.0
        alpha = sign * scale

        classification = backend.asarray(self.classification)
        zero = backend.full_like(classification, 0.0)
        direction = backend.scale(-alpha, classification)
        return backend.where(self._hinge_active(), direction, zero)
