"""Configuration module for the Polymarket trade mirror."""
from .mirror_settings import ConfigError, MirrorSettings, load_settings
