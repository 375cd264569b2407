"""
Base class for pairwise ranking loss layers.

A layer takes four bottom blobs (score_a, score_b, ref_a, ref_b), each holding
one scalar per example, and produces a scalar loss in a one-element top blob.
Forward caches the score difference and the signed distance; backward reads
that cache and writes gradients into the diffs of the two score blobs.

Call sequence per batch: setup (on shape change) -> forward -> backward.
Forward and backward must not run concurrently on the same instance.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, List, Optional, Sequence

import numpy as np

from pairrank.backends import ComputeBackend, get_backend
from pairrank.blob import Blob
from pairrank.config import LayerParameter
from pairrank.errors import ShapeMismatch, StaleStateError

logger = logging.getLogger(__name__)

SCORE_A, SCORE_B, REF_A, REF_B = range(4)


class LossLayer(ABC):
    """Abstract pairwise ranking loss layer."""

    type_name: str = ''

    def __init__(self, param: LayerParameter, backend: Optional[ComputeBackend] = None):
        """
        Args:
            param: Layer configuration (margin is fixed from here on)
            backend: Execution backend; built from param.backend when omitted
        """
        self._param = param
        self.backend = backend if backend is not None else get_backend(param.backend, param.device)

        self.num: Optional[int] = None
        self.difference = np.zeros(0, dtype=np.float32)
        self.signed_distance = np.zeros(0, dtype=np.float32)
        self._forward_ready = False
        self.forward_count = 0

    @property
    def param(self) -> LayerParameter:
        return self._param

    @property
    def margin(self) -> float:
        return self._param.margin

    @property
    def name(self) -> str:
        return self._param.name or self.type_name

    @property
    def exact_num_bottom_blobs(self) -> int:
        return 4

    def allow_force_backward(self, bottom_index: int) -> bool:
        """Only the two score inputs can receive gradients; references never do."""
        return bottom_index in (SCORE_A, SCORE_B)

    def setup(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        """
        Validate the bottom blobs and size the cached buffers to the batch.

        Raises:
            ShapeMismatch: wrong number of bottoms, a bottom with more than one
                value per example, or bottoms with different batch sizes
        """
        self._check_bottom(bottom)
        num = bottom[SCORE_A].num
        dtype = bottom[SCORE_A].dtype

        if num != self.num:
            logger.debug(f"{self.name}: resizing buffers {self.num} -> {num}")
        self.num = num
        self._allocate(num, dtype)
        self._forward_ready = False

        if top[0].reshape(1):
            top[0].diff[0] = 1.0

        logger.info(f"Setup {self.type_name} '{self.name}': num={num}, margin={self.margin}, "
                    f"backend={self.backend.name}")

    def _check_bottom(self, bottom: Sequence[Blob]) -> None:
        if len(bottom) != self.exact_num_bottom_blobs:
            raise ShapeMismatch(
                f"{self.type_name} takes exactly {self.exact_num_bottom_blobs} bottom blobs, "
                f"got {len(bottom)}"
            )
        num = bottom[SCORE_A].num
        for index, blob in enumerate(bottom):
            if blob.count_per_example != 1:
                raise ShapeMismatch(
                    f"Bottom blob {index} must hold one value per example, got shape {blob.shape}"
                )
            if blob.num != num:
                raise ShapeMismatch(
                    f"Bottom blob {index} has batch size {blob.num}, expected {num}"
                )

    def _allocate(self, num: int, dtype) -> None:
        """Allocate zeroed cache buffers of length num."""
        self.difference = np.zeros(num, dtype=dtype)
        self.signed_distance = np.zeros(num, dtype=dtype)

    def forward(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> float:
        """
        Compute the mean hinge loss over the batch and cache the distances.

        Returns:
            The loss (also written to top[0].data[0])
        """
        if self.num is None or bottom[SCORE_A].num != self.num:
            raise ShapeMismatch(
                f"{self.type_name} was set up for batch size {self.num}, "
                f"got {bottom[SCORE_A].num}; call setup() after reshaping"
            )
        backend = self.backend
        score_a, score_b, ref_a, ref_b = (backend.asarray(blob.flat_data()) for blob in bottom)

        difference = backend.sub(score_a, score_b)
        signed_distance = self._signed_distance(difference, ref_a, ref_b)
        penalty = backend.hinge(self.margin, signed_distance)

        loss = backend.sum(penalty) / self.num if self.num else 0.0

        self.difference[...] = backend.to_numpy(difference)
        self.signed_distance[...] = backend.to_numpy(signed_distance)
        top[0].data[0] = loss
        self._forward_ready = True
        self.forward_count += 1
        return loss

    def backward(self, top: Sequence[Blob], propagate_down: Sequence[bool],
                 bottom: Sequence[Blob]) -> None:
        """
        Write d(loss)/d(score) into the diffs of the requested score blobs.

        Args:
            top: Top blobs; top[0].diff[0] is the loss weight
            propagate_down: Per-bottom flags; only indices 0 and 1 are honoured
            bottom: The bottom blobs passed to the matching forward
        """
        if not self._forward_ready:
            raise StaleStateError(
                f"{self.type_name} '{self.name}': backward called before forward on the current batch"
            )

        for index, requested in enumerate(propagate_down):
            if requested and not self.allow_force_backward(index):
                logger.warning(f"{self.name}: cannot backpropagate to reference input {index}, ignoring")

        loss_weight = float(top[0].diff.reshape(-1)[0])
        scale = loss_weight / self.num if self.num else 0.0

        for index in (SCORE_A, SCORE_B):
            if index < len(propagate_down) and propagate_down[index]:
                ref_a = self.backend.asarray(bottom[REF_A].flat_data())
                ref_b = self.backend.asarray(bottom[REF_B].flat_data())
                gradient = self._input_gradient(index, scale, ref_a, ref_b)
                bottom[index].flat_diff()[...] = self.backend.to_numpy(gradient)

    def _hinge_active(self) -> Any:
        """Per-example mask of the cached forward where margin - signed_distance > 0."""
        signed_distance = self.backend.asarray(self.signed_distance)
        return self.backend.hinge(self.margin, signed_distance) > 0

    @abstractmethod
    def _signed_distance(self, difference: Any, ref_a: Any, ref_b: Any) -> Any:
        """Per-example signed distance from the score difference and the references."""
        pass

    @abstractmethod
    def _input_gradient(self, index: int, scale: float, ref_a: Any, ref_b: Any) -> Any:
        """Gradient for score input `index` given scale = loss_weight / num."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, margin={self.margin})"


def make_top() -> List[Blob]:
    """Top blob list holding the scalar loss, with the loss weight defaulting to 1."""
    top = Blob(1)
    top.diff[0] = 1.0
    return [top]
