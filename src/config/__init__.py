"""Configuration loading for restlink.

Configuration is read from the ``restlink:`` section of config/config.yaml.

Main Functions
--------------

    - load_config(): Load REST client configuration from YAML
    - get_config(): Get or load singleton config instance
    - set_config(): Replace singleton config instance
    - reset_config(): Reset singleton config instance

Usage Examples
--------------

Load configuration:

    >>> from config import load_config
    >>> config = load_config()
    >>> config.host
    'api.example.com'

Build a client from it:

    >>> from restlink import RestClient
    >>> client = RestClient.from_config(config)
"""

from config.config import (
    DEFAULT_CONFIG_FILE,
    RestClientConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "RestClientConfig",
    "get_config",
    "load_config",
    "reset_config",
    "set_config",
]
