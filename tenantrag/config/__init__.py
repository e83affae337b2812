"""Configuration module - exports Settings, load_config, and a module-level singleton."""

from tenantrag.config.loader import load_config
from tenantrag.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "load_config", "settings"]
