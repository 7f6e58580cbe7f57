"""Configuration module for the manager digest job."""

from manager_digest.config.logging import configure_logging
from manager_digest.config.settings import REPORT_KINDS, FlatSettings, get_settings

__all__ = ["FlatSettings", "REPORT_KINDS", "get_settings", "configure_logging"]
