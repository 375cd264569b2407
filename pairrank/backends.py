"""
Execution backends for pairrank layers.
Implements Strategy pattern for the elementwise vector primitives the loss
layers are written against. Every backend must produce the same numbers as
NumpyBackend within floating-point tolerance.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, Dict, Type

import numpy as np
import torch

from pairrank.errors import LayerConfigError

logger = logging.getLogger(__name__)


class ComputeBackend(ABC):
    """Abstract strategy for the vector arithmetic used by loss layers."""

    name: str = ''

    @abstractmethod
    def asarray(self, array: np.ndarray) -> Any:
        """Move a host array onto the backend."""
        pass

    @abstractmethod
    def to_numpy(self, array: Any) -> np.ndarray:
        """Bring a backend array back to the host."""
        pass

    @abstractmethod
    def sub(self, a: Any, b: Any) -> Any:
        """Elementwise a - b."""
        pass

    @abstractmethod
    def scale(self, alpha: float, x: Any) -> Any:
        """Elementwise alpha * x."""
        pass

    @abstractmethod
    def where(self, condition: Any, x: Any, y: Any) -> Any:
        """Elementwise select: x where condition holds, else y."""
        pass

    @abstractmethod
    def trunc(self, x: Any) -> Any:
        """Round toward zero."""
        pass

    @abstractmethod
    def hinge(self, margin: float, x: Any) -> Any:
        """Elementwise max(margin - x, 0)."""
        pass

    @abstractmethod
    def sum(self, x: Any) -> float:
        """Sum of all elements as a Python float."""
        pass

    @abstractmethod
    def full_like(self, x: Any, value: float) -> Any:
        """Array shaped like x filled with value."""
        pass


class NumpyBackend(ComputeBackend):
    """Reference CPU backend built on numpy."""

    name = 'numpy'

    def asarray(self, array: np.ndarray) -> np.ndarray:
        return np.asarray(array)

    def to_numpy(self, array: np.ndarray) -> np.ndarray:
        return np.asarray(array)

    def sub(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return np.subtract(a, b)

    def scale(self, alpha: float, x: np.ndarray) -> np.ndarray:
        return np.multiply(x, x.dtype.type(alpha))

    def where(self, condition: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        return np.where(condition, x, y)

    def trunc(self, x: np.ndarray) -> np.ndarray:
        return np.trunc(x)

    def hinge(self, margin: float, x: np.ndarray) -> np.ndarray:
        return np.maximum(x.dtype.type(margin) - x, x.dtype.type(0))

    def sum(self, x: np.ndarray) -> float:
        return float(np.sum(x))

    def full_like(self, x: np.ndarray, value: float) -> np.ndarray:
        return np.full_like(x, value)


class TorchBackend(ComputeBackend):
    """Accelerated backend running the same primitives as torch tensor ops."""

    name = 'torch'

    def __init__(self, device: str = 'auto'):
        if device == 'auto':
            device = 'cuda' if torch.cuda.is_available() else 'cpu'
        self.device = torch.device(device)
        logger.debug(f"TorchBackend using device: {self.device}")

    def asarray(self, array: np.ndarray) -> torch.Tensor:
        return torch.as_tensor(np.ascontiguousarray(array), device=self.device)

    def to_numpy(self, array: torch.Tensor) -> np.ndarray:
        return array.detach().cpu().numpy()

    def sub(self, a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
        return torch.sub(a, b)

    def scale(self, alpha: float, x: torch.Tensor) -> torch.Tensor:
        return torch.mul(x, alpha)

    def where(self, condition: torch.Tensor, x: torch.Tensor, y: torch.Tensor) -> torch.Tensor:
        return torch.where(condition, x, y)

    def trunc(self, x: torch.Tensor) -> torch.Tensor:
        return torch.trunc(x)

    def hinge(self, margin: float, x: torch.Tensor) -> torch.Tensor:
        return torch.clamp(margin - x, min=0.0)

    def sum(self, x: torch.Tensor) -> float:
        return float(torch.sum(x).item())

    def full_like(self, x: torch.Tensor, value: float) -> torch.Tensor:
        return torch.full_like(x, value)


_BACKENDS: Dict[str, Type[ComputeBackend]] = {
    'numpy': NumpyBackend,
    'cpu': NumpyBackend,
    'torch': TorchBackend,
}


def get_backend(name: str = 'numpy', device: str = 'auto') -> ComputeBackend:
    """
    Create a compute backend by name.

    Args:
        name: 'numpy' (alias 'cpu') or 'torch'
        device: Device for the torch backend ('cpu', 'cuda', 'auto')

    Returns:
        ComputeBackend instance
    """
    backend_class = _BACKENDS.get(name.lower())
    if backend_class is None:
        raise LayerConfigError(
            f"Unknown backend: {name}. Available: {sorted(_BACKENDS.keys())}"
        )
    if backend_class is TorchBackend:
        return TorchBackend(device=device)
    return backend_class()
