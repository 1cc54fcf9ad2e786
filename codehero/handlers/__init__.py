"""Background handlers driven by editor signals."""

from codehero.handlers.compilation import CompilationMonitor, CompilationOutcome
from codehero.handlers.error_collector import ErrorBatch, ErrorCollector, LogSeverity
from codehero.handlers.error_fix import ErrorFixCycle, FixCycleResult, FixCycleState, FixOutcome
from codehero.handlers.fix_feed import FixCycleFeed

__all__ = [
    "CompilationMonitor",
    "CompilationOutcome",
    "ErrorBatch",
    "ErrorCollector",
    "ErrorFixCycle",
    "FixCycleFeed",
    "FixCycleResult",
    "FixCycleState",
    "FixOutcome",
    "LogSeverity",
]
