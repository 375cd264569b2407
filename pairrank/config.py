"""
Configuration management for pairrank.

Global settings live in a singleton loaded from configs/global_config.yaml.
Per-layer settings are carried by the immutable LayerParameter dataclass.
Configuration hierarchy (highest to lowest priority):
1. Values passed directly (CLI arguments, LayerParameter fields)
2. Layer config files (YAML)
3. Global config file (configs/global_config.yaml)
4. Hardcoded defaults

Example:
    >>> from pairrank.config import get_global_config, LayerParameter
    >>> config = get_global_config()
    >>> backend = config.get('backend')
    >>> param = LayerParameter.from_dict({'type': 'RankingLoss', 'margin': 0.3})
"""

import copy
import yaml
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pairrank.errors import LayerConfigError


logger = logging.getLogger(__name__)


class GlobalConfig:
    """
    Singleton class for global configuration management.

    Loads configuration from configs/global_config.yaml and falls back to
    hardcoded defaults when the file is missing or unreadable.
    """

    _instance: Optional['GlobalConfig'] = None
    _config: Dict[str, Any] = {}
    _loaded: bool = False

    def __new__(cls) -> 'GlobalConfig':
        """Singleton pattern: ensure only one instance exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize configuration (only loads once)."""
        if not self._loaded:
            self._load_config()
            self._loaded = True

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        current_file = Path(__file__).resolve()
        project_root = current_file.parent.parent  # pairrank/config.py -> repo root

        config_path = project_root / 'configs' / 'global_config.yaml'

        if config_path.exists():
            try:
                with open(config_path, 'r') as f:
                    loaded = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load global config: {e}. Using defaults.")
                self._config = self._get_default_config()
                return
            self._config = self._get_default_config()
            self._deep_merge(self._config, loaded)
            logger.info(f"Loaded global config from: {config_path}")
        else:
            logger.debug(f"Global config not found at {config_path}. Using defaults.")
            self._config = self._get_default_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """Return hardcoded default configuration."""
        return {
            'backend': 'numpy',
            'device': 'auto',
            'ranking_loss': {
                'margin': 0.3,
            },
            'real_ranking_loss': {
                'margin': 0.3,
            },
            'gradient_check': {
                'step': 1e-3,
                'threshold': 1e-3,
            },
            'logging': {
                'level': 'INFO',
                'log_to_file': False,
                'log_to_console': True,
                'log_dir': 'logs/',
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            }
        }

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key (supports nested keys with dots).

        Args:
            key: Configuration key (e.g., 'backend' or 'ranking_loss.margin')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get configuration value as float."""
        value = self.get(key, default)
        try:
            return float(value)
        except (ValueError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value (runtime only, not persisted).

        Example:
            >>> config = get_global_config()
            >>> config.set('backend', 'torch')
        """
        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def reload(self) -> None:
        """Reload configuration from file."""
        self._loaded = False
        self._load_config()
        self._loaded = True
        logger.info("Global configuration reloaded")

    def to_dict(self) -> Dict[str, Any]:
        """Return full configuration as dictionary."""
        return copy.deepcopy(self._config)

    def merge(self, other_config: Dict[str, Any]) -> None:
        """Merge another configuration dict into global config."""
        self._deep_merge(self._config, other_config)

    def _deep_merge(self, base: Dict, updates: Dict) -> None:
        """Recursively merge updates into base dictionary."""
        for key, value in updates.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value


_global_config_instance: Optional[GlobalConfig] = None


def get_global_config() -> GlobalConfig:
    """Get the global configuration instance (Singleton)."""
    global _global_config_instance
    if _global_config_instance is None:
        _global_config_instance = GlobalConfig()
    return _global_config_instance


def setup_logging() -> None:
    """
    Setup logging based on global configuration.

    Should be called once at application startup.
    """
    from pairrank.logging_config import DEFAULT_FORMAT, setup_logger

    config = get_global_config()

    log_level = config.get('logging.level', 'INFO')
    log_file = None
    if config.get('logging.log_to_file', False):
        log_file = Path(config.get('logging.log_dir', 'logs/')) / 'pairrank.log'

    setup_logger(
        name='pairrank',
        log_file=log_file,
        level=log_level,
        console=config.get('logging.log_to_console', True),
        fmt=config.get('logging.format', DEFAULT_FORMAT),
    )


# Config section holding the default margin for each layer type
_MARGIN_KEYS = {
    'RankingLoss': 'ranking_loss.margin',
    'RealRankingLoss': 'real_ranking_loss.margin',
}


@dataclass(frozen=True)
class LayerParameter:
    """
    Immutable configuration of a single loss layer.

    Attributes:
        type: Registered layer type ('RankingLoss' or 'RealRankingLoss')
        margin: Hinge margin, fixed for the life of the layer
        name: Optional layer name used in log messages
        backend: Execution backend name ('numpy' or 'torch')
        device: Device for the torch backend ('cpu', 'cuda' or 'auto')
    """
    type: str
    margin: float = 0.3
    name: str = ''
    backend: str = 'numpy'
    device: str = 'auto'

    def __post_init__(self):
        if isinstance(self.margin, bool):
            raise LayerConfigError(f"margin must be a number, got {self.margin!r}")
        try:
            margin = float(self.margin)
        except (TypeError, ValueError):
            raise LayerConfigError(f"margin must be a number, got {self.margin!r}") from None
        object.__setattr__(self, 'margin', margin)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'LayerParameter':
        """
        Build a LayerParameter from a config dict, filling gaps from global config.

        Example config:
            {
                'type': 'RankingLoss',
                'name': 'rank_loss',
                'margin': 0.3,
                'backend': 'numpy'
            }
        """
        if 'type' not in config:
            raise LayerConfigError("Layer config requires a 'type' entry")

        global_config = get_global_config()
        layer_type = config['type']
        margin_key = _MARGIN_KEYS.get(layer_type, 'ranking_loss.margin')

        return cls(
            type=layer_type,
            margin=config.get('margin', global_config.get(margin_key, 0.3)),
            name=config.get('name', ''),
            backend=config.get('backend', global_config.get('backend', 'numpy')),
            device=config.get('device', global_config.get('device', 'auto')),
        )


def load_layer_config(config_path: Union[str, Path]) -> LayerParameter:
    """
    Load a layer configuration from a YAML file.

    The file may either hold the layer fields at top level or nest them
    under a 'layer' key.
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, 'r') as f:
        config = yaml.safe_load(f) or {}

    if 'layer' in config:
        config = config['layer']

    param = LayerParameter.from_dict(config)
    logger.info(f"Loaded layer config from {config_file}: {param}")
    return param
