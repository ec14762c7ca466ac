# config/__init__.py
"""
Configuration package: environment classes plus logging settings.
"""

from .base import Config, DevelopmentConfig, ProductionConfig, TestingConfig
from .monitoring import (
    DevelopmentMonitoringConfig,
    MonitoringConfig,
    ProductionMonitoringConfig,
    TestingMonitoringConfig,
)

__all__ = [
    "Config",
    "DevelopmentConfig",
    "ProductionConfig",
    "TestingConfig",
    "MonitoringConfig",
    "DevelopmentMonitoringConfig",
    "ProductionMonitoringConfig",
    "TestingMonitoringConfig",
]
