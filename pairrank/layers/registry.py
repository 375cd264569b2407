"""Layer registry mapping dispatch keys ('RankingLoss', ...) to layer classes."""

import logging
from typing import Dict, List, Optional, Type, TYPE_CHECKING

from pairrank.config import LayerParameter

if TYPE_CHECKING:
    from pairrank.backends import ComputeBackend
    from pairrank.layers.base import LossLayer

logger = logging.getLogger(__name__)


class LayerRegistry:
    """Registry for discovering and creating loss layers by type name."""

    def __init__(self):
        self._layer_classes: Dict[str, Type['LossLayer']] = {}

    def register(self, layer_class: Type['LossLayer']) -> None:
        """Register a layer class under its type_name."""
        name = layer_class.type_name
        if not name:
            raise ValueError(f"{layer_class.__name__} does not define a type_name")
        if name in self._layer_classes and self._layer_classes[name] is not layer_class:
            raise ValueError(f"Layer type already registered: {name}")
        self._layer_classes[name] = layer_class
        logger.debug(f"Registered layer type: {name}")

    def get(self, name: str) -> Type['LossLayer']:
        """Get a layer class by type name."""
        if name not in self._layer_classes:
            raise KeyError(f"Layer type not found: {name}. Available: {self.list_layer_types()}")
        return self._layer_classes[name]

    def list_layer_types(self) -> List[str]:
        """List all registered layer type names."""
        return sorted(self._layer_classes.keys())

    def create(self, param: LayerParameter,
               backend: Optional['ComputeBackend'] = None) -> 'LossLayer':
        """Instantiate the layer named by param.type."""
        layer_class = self.get(param.type)
        layer = layer_class(param, backend=backend)
        logger.info(f"Created layer: {layer}")
        return layer


# Global registry instance
_global_registry: Optional[LayerRegistry] = None


def get_registry() -> LayerRegistry:
    """Get the global layer registry, creating it if needed."""
    global _global_registry
    if _global_registry is None:
        _global_registry = LayerRegistry()
    return _global_registry


def register_layer(layer_class: Type['LossLayer']) -> Type['LossLayer']:
    """Decorator to register a layer class with the global registry."""
    get_registry().register(layer_class)
    return layer_class


def create_layer(param: LayerParameter,
                 backend: Optional['ComputeBackend'] = None) -> 'LossLayer':
    """
    Create a loss layer from its parameter.

    Example:
        >>> layer = create_layer(LayerParameter(type='RankingLoss', margin=0.3))
    """
    return get_registry().create(param, backend=backend)
