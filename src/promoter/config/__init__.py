"""
Configuration management for the promoter.

Contains Pydantic settings loaded from the environment and the immutable
promotion configuration that is handed to every stage.
"""
from promoter.config.settings import Settings, get_settings
from promoter.config.promotion import (
    EnvironmentConfig,
    PromotionConfig,
    build_promotion_config,
)

__all__ = [
    "Settings",
    "get_settings",
    "EnvironmentConfig",
    "PromotionConfig",
    "build_promotion_config",
]
