"""Configuration module for oncallbot."""

from oncallbot.config.loader import get_config_path, load_config
from oncallbot.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config"]
