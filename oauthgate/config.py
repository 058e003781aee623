"""
Config system - OAuth client configuration with layered loading.

Sources merge with precedence:
overrides > environment variables > .env file > JSON config files > defaults
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from glob import glob
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from dotenv import dotenv_values

from .faults import ConfigInvalidFault, ConfigMissingFault


def _parse_scopes(value: Any) -> list[str]:
    """Accept a list, or a space/comma separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [s for s in value.replace(",", " ").split() if s]
    return [str(s) for s in value]


@dataclass
class OAuthClientConfig:
    """
    Registration of this application with one authorization server.

    ``scopes`` keeps its declared order; it is joined with single spaces
    wherever a ``scope`` parameter is sent.
    """
    client_id: str
    redirect_uri: str
    authorization_endpoint: str
    token_endpoint: str
    name: str = "default"
    client_secret: Optional[str] = field(default=None, repr=False)
    scopes: list[str] = field(default_factory=list)
    userinfo_endpoint: Optional[str] = None
    use_pkce: bool = False
    timeout: float = 10.0

    def validate(self) -> "OAuthClientConfig":
        """
        Check required keys and endpoint URLs.

        Raises:
            ConfigMissingFault: A required key is empty
            ConfigInvalidFault: An endpoint is not an absolute http(s) URL
        """
        for key in ("client_id", "redirect_uri", "authorization_endpoint", "token_endpoint"):
            if not getattr(self, key):
                raise ConfigMissingFault(f"clients.{self.name}.{key}")

        endpoints = ["redirect_uri", "authorization_endpoint", "token_endpoint"]
        if self.userinfo_endpoint:
            endpoints.append("userinfo_endpoint")
        for key in endpoints:
            parsed = urlparse(getattr(self, key))
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ConfigInvalidFault(
                    f"clients.{self.name}.{key}", "must be an absolute http(s) URL"
                )

        if self.timeout <= 0:
            raise ConfigInvalidFault(f"clients.{self.name}.timeout", "must be positive")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format (client secret masked)."""
        return {
            "name": self.name,
            "client_id": self.client_id,
            "client_secret": "***" if self.client_secret else None,
            "scopes": list(self.scopes),
            "redirect_uri": self.redirect_uri,
            "authorization_endpoint": self.authorization_endpoint,
            "token_endpoint": self.token_endpoint,
            "userinfo_endpoint": self.userinfo_endpoint,
            "use_pkce": self.use_pkce,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: str | None = None) -> "OAuthClientConfig":
        """Build from a plain mapping (e.g. one ``clients.<name>`` section)."""
        return cls(
            name=name or data.get("name", "default"),
            client_id=str(data.get("client_id") or ""),
            client_secret=data.get("client_secret"),
            scopes=_parse_scopes(data.get("scopes")),
            redirect_uri=data.get("redirect_uri", ""),
            authorization_endpoint=data.get("authorization_endpoint", ""),
            token_endpoint=data.get("token_endpoint", ""),
            userinfo_endpoint=data.get("userinfo_endpoint"),
            use_pkce=bool(data.get("use_pkce", False)),
            timeout=float(data.get("timeout", 10.0)),
        )


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Environment keys use the prefix plus double underscores for nesting:
    ``OAUTHGATE_CLIENTS__GITHUB__CLIENT_ID`` -> ``clients.github.client_id``.
    """

    def __init__(self, env_prefix: str = "OAUTHGATE_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = "OAUTHGATE_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Merge order (later overrides earlier):
        1. JSON config files (glob patterns supported)
        2. .env file
        3. Environment variables (prefixed)
        4. Manual overrides

        Args:
            paths: List of JSON config file paths
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            for path_str in sorted(glob(pattern)):
                loader._load_json_file(Path(path_str))

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ConfigInvalidFault(str(path), "top level must be a JSON object")
        self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load config from .env file."""
        if not Path(path).exists():
            return
        for key, value in dotenv_values(path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert OAUTHGATE_CLIENTS__GITHUB__CLIENT_ID to nested dict."""
        key = key[len(self.env_prefix):]
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(parts[-1], value)

    def _parse_value(self, key: str, value: str) -> Any:
        """Parse string value to appropriate type."""
        # Identifiers and secrets stay strings even when they look numeric
        if key in ("client_id", "client_secret"):
            return value

        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current: Any = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def client_config(self, name: str) -> OAuthClientConfig:
        """
        Build and validate the client registered under ``clients.<name>``.

        Raises:
            ConfigMissingFault: No such client section
        """
        section = self.get(f"clients.{name}")
        if not isinstance(section, dict):
            raise ConfigMissingFault(f"clients.{name}")
        return OAuthClientConfig.from_dict(section, name=name).validate()
