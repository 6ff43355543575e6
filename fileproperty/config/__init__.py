"""
Configuration package for the file property engine.
"""

from .settings import (
    EnvironmentManager,
    BaseConfig,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    get_config,
)

__all__ = [
    'EnvironmentManager',
    'BaseConfig',
    'DevelopmentConfig',
    'ProductionConfig',
    'TestingConfig',
    'get_config',
]
