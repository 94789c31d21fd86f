"""Configuration management for ssltransport."""

import os
import json
import yaml
from typing import Dict, Optional, Any

from .context import PROTOCOL_VERSIONS
from .logger import LEVELS
from .parameters import TLSParameters
from .stores import STORE_LOADERS, KeyManagers, TrustManagers


def _parse_bool(value: str) -> bool:
    return value.lower() == "true"


def _parse_list(value: str) -> list:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    """Configuration manager with file and environment variable support.

    Read once at startup; the resulting default TLS parameters are injected
    into a TLSTransportFactory rather than looked up by the factory itself.
    """

    def __init__(self, config_file: Optional[str] = None):
        self.config: Dict[str, Any] = {}
        self.config_file = config_file or os.getenv('SSLTRANSPORT_CONFIG', 'ssltransport.yaml')
        self._load_config()
        self._load_env_overrides()

    def _load_config(self):
        """Load configuration from file."""
        self._set_defaults()
        if not os.path.exists(self.config_file):
            return

        try:
            with open(self.config_file, 'r') as f:
                if self.config_file.endswith('.yaml') or self.config_file.endswith('.yml'):
                    loaded = yaml.safe_load(f) or {}
                elif self.config_file.endswith('.json'):
                    loaded = json.load(f)
                else:
                    return
        except (OSError, yaml.YAMLError, ValueError):
            return

        for section, values in loaded.items():
            if isinstance(values, dict):
                self.config.setdefault(section, {}).update(values)

    def _set_defaults(self):
        """Set default configuration values."""
        self.config = {
            "tls": {
                "protocol": "TLS",
                "key_store": None,
                "key_store_password": None,
                "key_manager_algorithm": None,
                "key_store_format": None,
                "trust_store": None,
                "trust_store_password": None,
                "trust_manager_algorithm": None,
                "trust_store_format": None,
                "cipher_suites": None,
                "client_auth": False
            },
            "logging": {
                "level": "INFO"
            }
        }

    def _load_env_overrides(self):
        """Override config with environment variables."""
        env_mappings = {
            "SSL_PROTOCOL": ("tls", "protocol"),
            "SSL_KEY_STORE": ("tls", "key_store"),
            "SSL_KEY_STORE_PASSWORD": ("tls", "key_store_password"),
            "SSL_KEY_MANAGER_ALGORITHM": ("tls", "key_manager_algorithm"),
            "SSL_KEY_STORE_TYPE": ("tls", "key_store_format"),
            "SSL_TRUST_STORE": ("tls", "trust_store"),
            "SSL_TRUST_STORE_PASSWORD": ("tls", "trust_store_password"),
            "SSL_TRUST_MANAGER_ALGORITHM": ("tls", "trust_manager_algorithm"),
            "SSL_TRUST_STORE_TYPE": ("tls", "trust_store_format"),
            "SSL_CIPHER_SUITES": ("tls", "cipher_suites", _parse_list),
            "SSL_CLIENT_AUTH": ("tls", "client_auth", _parse_bool),
            "LOG_LEVEL": ("logging", "level", str.upper)
        }

        for env_key, (section, key, *converters) in env_mappings.items():
            value = os.getenv(env_key)
            if value is not None:
                if converters:
                    converter = converters[0]
                    try:
                        value = converter(value)
                    except (ValueError, TypeError):
                        continue
                if section not in self.config:
                    self.config[section] = {}
                self.config[section][key] = value

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        value = self.config.get(section, {}).get(key, default)
        return default if value is None else value

    def set(self, section: str, key: str, value: Any):
        """Set configuration value."""
        if section not in self.config:
            self.config[section] = {}
        self.config[section][key] = value

    def save(self, filename: Optional[str] = None):
        """Save configuration to file."""
        target_file = filename or self.config_file
        with open(target_file, 'w') as f:
            if target_file.endswith('.yaml') or target_file.endswith('.yml'):
                yaml.dump(self.config, f, default_flow_style=False)
            else:
                json.dump(self.config, f, indent=2)

    def tls_parameters(self) -> Optional[TLSParameters]:
        """Build default TLS parameters, or None when no store is configured."""
        key_store = self.get("tls", "key_store")
        trust_store = self.get("tls", "trust_store")
        if not key_store and not trust_store:
            return None

        cipher_suites = self.get("tls", "cipher_suites")
        if isinstance(cipher_suites, str):
            cipher_suites = _parse_list(cipher_suites)

        client_auth = self.get("tls", "client_auth", False)
        if isinstance(client_auth, str):
            client_auth = _parse_bool(client_auth)

        params = TLSParameters(
            protocol=self.get("tls", "protocol"),
            cipher_suites=cipher_suites,
            client_auth=bool(client_auth)
        )
        if key_store:
            params.set_key_store(
                key_store,
                self.get("tls", "key_store_password"),
                self.get("tls", "key_manager_algorithm"),
                self.get("tls", "key_store_format")
            )
        if trust_store:
            params.set_trust_store(
                trust_store,
                self.get("tls", "trust_store_password"),
                self.get("tls", "trust_manager_algorithm"),
                self.get("tls", "trust_store_format")
            )
        return params

    def validate(self) -> tuple[bool, list[str]]:
        """Validate configuration."""
        errors = []

        protocol = self.get("tls", "protocol", "TLS")
        if protocol.upper() not in PROTOCOL_VERSIONS:
            errors.append(f"Unsupported TLS protocol: {protocol}")

        for kind, algorithms in (("key", KeyManagers.ALGORITHMS), ("trust", TrustManagers.ALGORITHMS)):
            path = self.get("tls", f"{kind}_store")
            if not path:
                continue
            if not os.path.exists(path):
                errors.append(f"{kind.capitalize()} store file not found: {path}")
            store_format = self.get("tls", f"{kind}_store_format")
            if store_format and store_format.upper() not in STORE_LOADERS:
                errors.append(f"Unsupported {kind} store format: {store_format}")
            algorithm = self.get("tls", f"{kind}_manager_algorithm")
            if algorithm and algorithm.upper() not in algorithms:
                errors.append(f"Unsupported {kind} manager algorithm: {algorithm}")

        if self.get("logging", "level", "INFO").upper() not in LEVELS:
            errors.append(f"Invalid log level: {self.get('logging', 'level')}")

        return len(errors) == 0, errors
