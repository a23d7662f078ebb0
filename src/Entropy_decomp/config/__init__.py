"""Application settings and the layered model configuration."""

from .settings import AppSettings, get_settings, load_settings


__all__ = ["AppSettings", "get_settings", "load_settings"]
