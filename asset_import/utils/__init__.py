"""
Utility modules for the asset import pipeline.

- logging: logging setup, entry/exit decorator, run correlation ids
- config: environment configuration
- config_loader: YAML import job files
- retry: backoff and circuit breaker for object store calls
- metrics: Prometheus collectors
"""

from asset_import.utils.logging import get_logger, log_function_call

__all__ = ["get_logger", "log_function_call"]
