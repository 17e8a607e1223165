"""
gmpflow.bootstrap - Configuration and logging setup.
"""

from .config import (
    LLMConfig,
    SchedulingConfig,
    LoggingConfig,
    GMPFlowConfig,
    load_config,
    get_config,
    reset_config,
)
from .logging_setup import JSONFormatter, setup_logging

__all__ = [
    "LLMConfig",
    "SchedulingConfig",
    "LoggingConfig",
    "GMPFlowConfig",
    "load_config",
    "get_config",
    "reset_config",
    "JSONFormatter",
    "setup_logging",
]
