"""Configuration module for the SME history synthesizer."""

from sme_history.config.logging import configure_logging
from sme_history.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging"]
