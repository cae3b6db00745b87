#!/usr/bin/env python3
"""
Configuration Management Module for Staking Signer CLI

Handles hierarchical configuration loading, environment variable mapping
and validation of settings for the mainnet and testnet profiles.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

# Configuration file locations in order of precedence (highest to lowest)
CONFIG_SEARCH_PATHS = [
    Path.cwd() / '.staking-signer.yml',
    Path.cwd() / '.staking-signer.json',
    Path.home() / '.staking-signer' / 'config.yml',
    Path.home() / '.staking-signer' / 'config.json',
]

# Environment variable prefix
ENV_PREFIX = 'STAKING_SIGNER_'

DEFAULT_CONFIG = {
    'network': {
        'type': 'mainnet',  # mainnet, testnet
    },

    'policy': {
        'derivation_path': None,  # defaults to m/86'/0'/0' or m/86'/1'/0'
        'display_leaf_hash': True,
    },

    # Signing device: a hex seed for a software device, or a fingerprint
    # and account xpub for a watch-only device
    'device': {
        'seed': None,
        'fingerprint': None,
        'xpub': None,
    },

    'cli': {
        'output_format': 'table',  # table, json, yaml
        'color_output': True,
    },
}

PROFILES = {
    'mainnet': {
        'network': {'type': 'mainnet'},
    },
    'testnet': {
        'network': {'type': 'testnet'},
    },
}


class ConfigurationError(Exception):
    """Raised when a configuration file cannot be read."""
    pass


class ConfigurationManager:
    """Manages hierarchical configuration with environment variable support."""

    def __init__(self, config_file: Optional[str] = None, profile: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Explicit configuration file path
            profile: Configuration profile to load (mainnet, testnet)
        """
        self.logger = logging.getLogger('staking-signer.config')
        self.config_file = config_file
        self.profile = profile
        self._config_cache = None
        self._config_sources = []

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from all sources in hierarchical order.

        Returns:
            Merged configuration dictionary

        Raises:
            ConfigurationError: If an explicit config file is missing or unreadable
        """
        if self._config_cache is not None:
            return self._config_cache

        configs = [DEFAULT_CONFIG]
        self._config_sources = ["defaults"]

        if self.profile:
            if self.profile not in PROFILES:
                raise ConfigurationError(f"Unknown profile: {self.profile}")
            configs.append(PROFILES[self.profile])
            self._config_sources.append(f"profile:{self.profile}")
            self.logger.debug(f"Applied profile: {self.profile}")

        if self.config_file:
            path = Path(self.config_file)
            if not path.exists():
                raise ConfigurationError(f"Config file not found: {path}")
            configs.append(self._load_config_file(path))
            self._config_sources.append(f"file:{path}")
        else:
            for config_path in CONFIG_SEARCH_PATHS:
                if config_path.exists():
                    configs.append(self._load_config_file(config_path))
                    self._config_sources.append(f"file:{config_path}")
                    self.logger.debug(f"Loaded config from {config_path}")
                    break  # Use first found config file

        env_config = self._load_environment_variables()
        if env_config:
            configs.append(env_config)
            self._config_sources.append("environment")

        self._config_cache = self._deep_merge(*configs)
        return self._config_cache

    def _load_config_file(self, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file."""
        try:
            with open(path, 'r') as f:
                if path.suffix in ['.yml', '.yaml']:
                    data = yaml.safe_load(f)
                elif path.suffix == '.json':
                    data = json.load(f)
                else:
                    raise ConfigurationError(f"Unknown config file format: {path}")
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to load config from {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        The first underscore separates the section from the key, so
        STAKING_SIGNER_POLICY_DERIVATION_PATH maps to policy.derivation_path.
        """
        env_config = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue
            section, _, name = key[len(ENV_PREFIX):].lower().partition('_')
            if not name:
                continue
            env_config.setdefault(section, {})[name] = self._parse_env_value(value)

        return env_config

    def _parse_env_value(self, value: str) -> Union[str, bool]:
        # Seeds and fingerprints are hex strings and must not become numbers
        if value.lower() in ['true', 'yes']:
            return True
        elif value.lower() in ['false', 'no']:
            return False
        return value

    def _deep_merge(self, *dicts: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge multiple dictionaries."""
        result = {}

        for dictionary in dicts:
            for key, value in dictionary.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = self._deep_merge(result[key], value)
                elif isinstance(value, dict):
                    result[key] = self._deep_merge(value)
                else:
                    result[key] = value

        return result

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        Args:
            key_path: Dot-separated path (e.g., 'policy.derivation_path')
            default: Default value if key not found or unset

        Returns:
            Configuration value or default
        """
        current = self.load()

        for key in key_path.split('.'):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        return default if current is None else current

    @property
    def is_testnet(self) -> bool:
        return self.get('network.type') == 'testnet'

    def validate(self) -> List[str]:
        """
        Validate current configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        network_type = self.get('network.type')
        if network_type not in ['mainnet', 'testnet']:
            errors.append(f"Invalid network type: {network_type}")

        output_format = self.get('cli.output_format')
        if output_format not in ['table', 'json', 'yaml']:
            errors.append(f"Invalid output format: {output_format}")

        if not isinstance(self.get('policy.display_leaf_hash'), bool):
            errors.append("policy.display_leaf_hash must be true or false")

        seed = self.get('device.seed')
        if seed is not None:
            try:
                seed_bytes = bytes.fromhex(str(seed))
            except ValueError:
                errors.append("device.seed must be hex")
            else:
                if not 16 <= len(seed_bytes) <= 64:
                    errors.append("device.seed must be 16 to 64 bytes")

        fingerprint = self.get('device.fingerprint')
        if fingerprint is not None:
            try:
                if len(bytes.fromhex(str(fingerprint))) != 4:
                    errors.append("device.fingerprint must be 4 bytes")
            except ValueError:
                errors.append("device.fingerprint must be hex")

        if (fingerprint is None) != (self.get('device.xpub') is None):
            errors.append("device.fingerprint and device.xpub must be set together")

        return errors

    def get_sources(self) -> List[str]:
        """Get list of configuration sources that were loaded."""
        self.load()
        return self._config_sources

    def reset(self):
        """Reset configuration cache."""
        self._config_cache = None
        self._config_sources = []
