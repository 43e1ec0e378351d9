"""Structured Logging & Evaluation Tracing.

Provides structured JSON logging, per-evaluation context binding,
and performance timing for the Farmheart notification engine.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import LogContext, generate_correlation_id
from src.logging_config.performance import PerformanceTimer, log_performance
from src.logging_config.setup import configure_logging

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "LogContext",
    "PerformanceTimer",
    "configure_logging",
    "generate_correlation_id",
    "log_performance",
]
