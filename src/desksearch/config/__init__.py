"""Configuration management."""
from desksearch.config.settings import Config
from desksearch.config.constants import *

__all__ = [
    "Config",
]
