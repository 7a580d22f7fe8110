"""Configuration loading and validation."""

from exchange.config.schema import ExchangeConfig, PlayersConfig, SocketConfig
from exchange.config.loader import load_config, merge_configs

__all__ = [
    "ExchangeConfig",
    "PlayersConfig",
    "SocketConfig",
    "load_config",
    "merge_configs",
]
