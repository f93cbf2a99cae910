"""
Analytics Store
Configuration Module
"""
from .settings import SAFETY_MARGIN_PERCENT, Settings, StoreSettings, RetentionSettings, get_settings

__all__ = ["SAFETY_MARGIN_PERCENT", "Settings", "StoreSettings", "RetentionSettings", "get_settings"]
