"""LocalMCP resilience coordination layer."""

from .resilience import (
    ExecutionOptions,
    ResilienceConfig,
    ResilienceCoordinator,
    ResilienceStats,
)
from .utils.logger import configure_logging

__version__ = "0.1.0"

__all__ = [
    "ResilienceCoordinator",
    "ResilienceConfig",
    "ExecutionOptions",
    "ResilienceStats",
    "configure_logging",
    "__version__",
]
