"""REST client configuration from YAML file.

Loads from config/config.yaml, section ``restlink:``:
- Connection settings (scheme, host, port, redirects, TLS, timeout)
- Authentication mode and credentials
- Vendor, custom headers and server-error attributes
- Quasi-OAuth2 token endpoint, refresh and retry settings

Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core.errors.exceptions import ConfigurationError

# Configure module logger
logger = logging.getLogger(__name__)

AUTH_TYPES = ("no_auth", "basic", "wsse", "bearer_token", "quasi_oauth2")
SCHEMES = ("http", "https")


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        # Support both ${VAR} and ${VAR:-default} syntax
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _as_bool(value: Any) -> bool:
    # bool('false') would be True
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"


@dataclass
class RestClientConfig:
    """REST client configuration.

    Configuration structure:
        restlink:
          connection: {scheme, host, port, timeout_ms, follow_redirects, ignore_ssl_errors}
          auth: {type, username, password, client_name, token}
          api: {vendor, custom_headers, server_error_attributes}
          application: {name, version}
          token: {path, refresh_interval_seconds, retry_attempts, retry_interval_seconds}

    All timing values in milliseconds unless the name says otherwise.
    """

    # =========================================================================
    # CONNECTION SETTINGS
    # =========================================================================
    host: str = ""
    scheme: str = "https"
    port: Optional[int] = None  # None = scheme default, not sent in URLs
    timeout_ms: int = 300000  # 5 minutes
    follow_redirects: bool = True
    ignore_ssl_errors: bool = False

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================
    auth_type: str = "no_auth"
    username: str = ""
    password: str = ""
    client_name: str = ""
    token: str = ""

    # =========================================================================
    # API SETTINGS
    # =========================================================================
    vendor: str = ""
    custom_headers: Dict[str, str] = field(default_factory=dict)
    server_error_attributes: List[str] = field(default_factory=list)

    # =========================================================================
    # DIAGNOSTIC HEADERS
    # =========================================================================
    application_name: str = "restlink"
    application_version: str = "0.0.0"

    # =========================================================================
    # QUASI-OAUTH2 TOKEN
    # =========================================================================
    token_path: str = "/oauth2/token"
    token_refresh_interval_seconds: float = 3600.0  # 1 hour
    token_retry_attempts: int = 4
    token_retry_interval_seconds: float = 2.0

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.host = str(self.host or "").strip()
        self.scheme = str(self.scheme or "https").strip().lower()
        self.port = int(self.port) if self.port not in (None, "") else None
        self.timeout_ms = int(self.timeout_ms)
        self.follow_redirects = _as_bool(self.follow_redirects)
        self.ignore_ssl_errors = _as_bool(self.ignore_ssl_errors)
        self.auth_type = str(self.auth_type or "no_auth").strip().lower()
        self.custom_headers = {str(k): str(v) for k, v in (self.custom_headers or {}).items()}
        self.server_error_attributes = [str(a) for a in (self.server_error_attributes or [])]
        self.token_refresh_interval_seconds = float(self.token_refresh_interval_seconds)
        self.token_retry_attempts = int(self.token_retry_attempts)
        self.token_retry_interval_seconds = float(self.token_retry_interval_seconds)

    def validate(self) -> None:
        """Validate configuration, raising ConfigurationError on the first problem."""
        if not self.host:
            raise ConfigurationError("restlink.connection.host is required")
        if self.scheme not in SCHEMES:
            raise ConfigurationError(
                f"restlink.connection.scheme must be one of {SCHEMES}, got '{self.scheme}'"
            )
        if self.port is not None and not 0 < self.port < 65536:
            raise ConfigurationError(f"restlink.connection.port out of range: {self.port}")
        if self.auth_type not in AUTH_TYPES:
            raise ConfigurationError(
                f"restlink.auth.type must be one of {AUTH_TYPES}, got '{self.auth_type}'"
            )
        if self.auth_type in ("basic", "wsse") and not self.username:
            raise ConfigurationError(f"restlink.auth.username is required for '{self.auth_type}'")
        if self.token_retry_attempts < 0:
            raise ConfigurationError(
                f"restlink.token.retry_attempts must be >= 0, got {self.token_retry_attempts}"
            )
        if self.token_retry_interval_seconds < 0:
            raise ConfigurationError(
                "restlink.token.retry_interval_seconds must be >= 0, "
                f"got {self.token_retry_interval_seconds}"
            )


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> RestClientConfig:
    """Load REST client configuration from config.yaml file.

    Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
    RESTLINK_HOST, RESTLINK_USERNAME, RESTLINK_PASSWORD and RESTLINK_TOKEN
    take precedence over the file.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n" f"Expected file: config/config.yaml"
        )

    logger.info(f"Loading configuration from file: {config_path}")
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if "restlink" not in yaml_data:
        raise ConfigurationError(
            "Invalid config file: missing 'restlink:' section\n"
            "See config/config.yaml for correct structure"
        )

    section = yaml_data["restlink"] or {}
    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        section = _deep_merge(section, overrides)

    connection = section.get("connection", {})
    auth = section.get("auth", {})
    api = section.get("api", {})
    application = section.get("application", {})
    token = section.get("token", {})

    config = RestClientConfig(
        host=os.getenv("RESTLINK_HOST") or connection.get("host", ""),
        scheme=connection.get("scheme", "https"),
        port=connection.get("port"),
        timeout_ms=connection.get("timeout_ms", 300000),
        follow_redirects=connection.get("follow_redirects", True),
        ignore_ssl_errors=connection.get("ignore_ssl_errors", False),
        auth_type=auth.get("type", "no_auth"),
        username=os.getenv("RESTLINK_USERNAME") or auth.get("username", ""),
        password=os.getenv("RESTLINK_PASSWORD") or auth.get("password", ""),
        client_name=auth.get("client_name", ""),
        token=os.getenv("RESTLINK_TOKEN") or auth.get("token", ""),
        vendor=api.get("vendor", ""),
        custom_headers=api.get("custom_headers", {}),
        server_error_attributes=api.get("server_error_attributes", []),
        application_name=application.get("name", "restlink"),
        application_version=application.get("version", "0.0.0"),
        token_path=token.get("path", "/oauth2/token"),
        token_refresh_interval_seconds=token.get("refresh_interval_seconds", 3600),
        token_retry_attempts=token.get("retry_attempts", 4),
        token_retry_interval_seconds=token.get("retry_interval_seconds", 2.0),
    )

    if config.auth_type != "no_auth" and not (config.username or config.token):
        logger.warning(f"Auth type '{config.auth_type}' configured without credentials")

    logger.debug("Validating configuration...")
    config.validate()
    logger.debug("Configuration validation passed")

    return config


_rest_config: Optional[RestClientConfig] = None


def get_config() -> RestClientConfig:
    """Get or load the singleton REST client config instance."""
    global _rest_config
    if _rest_config is None:
        _rest_config = load_config()
    return _rest_config


def set_config(config: RestClientConfig) -> None:
    """Set the singleton config instance (useful for testing)."""
    global _rest_config
    _rest_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _rest_config
    _rest_config = None
