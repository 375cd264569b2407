"""
Blob: the data/diff buffer pair exchanged between a host engine and a layer.

A blob owns two numpy arrays of identical shape. `data` holds values produced
by the forward pass, `diff` holds gradients written by the backward pass.
The first dimension is the batch (num) dimension.
"""

import logging
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class Blob:
    """Resizable container holding a data array and its gradient array."""

    def __init__(self, *shape: int, dtype=np.float32):
        self.dtype = np.dtype(dtype)
        self._shape: Optional[Tuple[int, ...]] = None
        self.data = np.zeros(0, dtype=self.dtype)
        self.diff = np.zeros(0, dtype=self.dtype)
        self.reshape(*shape)

    @classmethod
    def from_array(cls, array, dtype=None) -> 'Blob':
        """Wrap an array-like as a blob's data. 1-D input is treated as (N, 1)."""
        array = np.asarray(array, dtype=dtype)
        if array.dtype.kind not in 'fc':
            array = array.astype(np.float32)
        if array.ndim == 0:
            array = array.reshape(1)
        if array.ndim == 1:
            array = array.reshape(-1, 1)
        blob = cls(*array.shape, dtype=array.dtype)
        blob.data[...] = array
        return blob

    def reshape(self, *shape: int) -> bool:
        """
        Resize the blob. Arrays are reallocated only when the shape changes.

        Returns:
            True if the storage was reallocated
        """
        shape = tuple(int(s) for s in shape)
        if any(s < 0 for s in shape):
            raise ValueError(f"Blob dimensions must be non-negative, got {shape}")
        if shape == self._shape:
            return False
        logger.debug(f"Reshaping blob {self._shape} -> {shape}")
        self._shape = shape
        self.data = np.zeros(shape, dtype=self.dtype)
        self.diff = np.zeros(shape, dtype=self.dtype)
        return True

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._shape

    @property
    def num(self) -> int:
        """Batch size (first dimension)."""
        return self._shape[0] if self._shape else 1

    @property
    def count(self) -> int:
        return int(np.prod(self._shape)) if self._shape else 1

    @property
    def count_per_example(self) -> int:
        """Number of values per batch entry (channels * height * width)."""
        return int(np.prod(self._shape[1:])) if len(self._shape) > 1 else 1

    def flat_data(self) -> np.ndarray:
        """Data as a length-`num` vector view (valid for width-1 blobs)."""
        return self.data.reshape(self.num)

    def flat_diff(self) -> np.ndarray:
        """Diff as a length-`num` vector view (valid for width-1 blobs)."""
        return self.diff.reshape(self.num)

    def __repr__(self) -> str:
        return f"Blob(shape={self._shape}, dtype={self.dtype})"
