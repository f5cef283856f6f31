"""Simple YAML configuration loader for the audio relay and recording client."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    'server': {
        'host': '0.0.0.0',
        'port': 3001,
        'public_url': 'ws://localhost:3001',
    },
    'storage': {
        'data_directory': 'audio-data',
        'file_extension': '.pcm',
    },
    'client': {
        'chunk_interval_ms': 500,
        'max_reconnect_attempts': 3,
        'reconnect_base_delay': 2.0,
        'reconnect_max_delay': 30.0,
    },
    'audio': {
        'sample_rate': 16000,
        'channels': 1,
        'frames_per_buffer': 1024,
        'echo_cancellation': True,
        'noise_suppression': True,
        'auto_gain_control': True,
    },
    'logging': {
        'level': 'INFO',
        'file_path': 'logs/audiorelay.log',
        'console_output': True,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class RelayConfig:
    """Audio relay configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults are used
                        and relative paths resolve against the current directory.
        """
        if config_path is None:
            self.config_file = None
            self.config = _merge(DEFAULT_CONFIG, {})
            self._resolve_paths(self.config, Path.cwd())
            return

        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    @classmethod
    def defaults(cls) -> "RelayConfig":
        """Build a configuration from the built-in defaults only."""
        return cls(None)

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except OSError as e:
            raise ValueError(f"Failed to load configuration: {e}")

        if not loaded:
            raise ValueError("Configuration file is empty")
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        config = _merge(DEFAULT_CONFIG, loaded)
        self._resolve_paths(config, self.config_file.parent)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any], base_dir: Path) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        data_dir = config['storage']['data_directory']
        if not os.path.isabs(data_dir):
            config['storage']['data_directory'] = str(base_dir / data_dir)

        log_path = config['logging']['file_path']
        if not os.path.isabs(log_path):
            config['logging']['file_path'] = str(base_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'server.port').

        Args:
            key_path: Dot-separated key path (e.g., 'storage.data_directory')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'server.port')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_port(self) -> int:
        """Get listening port; the PORT environment variable wins over the file."""
        env_port = os.getenv('PORT')
        if env_port:
            try:
                return int(env_port)
            except ValueError:
                raise ValueError(f"PORT environment variable is not a number: {env_port!r}")
        return int(self.get('server.port', 3001))

    def get_public_url(self) -> str:
        """Get the relay URL clients connect to."""
        return self.get('server.public_url', f"ws://localhost:{self.get_port()}")

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'audio-data')
        return str(Path(data_dir).absolute())
