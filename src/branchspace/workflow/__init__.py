"""Operation batches and their parallel executor."""

from .executor import DEFAULT_CONCURRENCY_LIMIT, ParallelOperationExecutor
from .operations import (
    BatchResult,
    BatchResults,
    Operation,
    OperationBatch,
    OperationKind,
    OperationResult,
    OperationStatus,
)

__all__ = [
    "DEFAULT_CONCURRENCY_LIMIT",
    "ParallelOperationExecutor",
    "BatchResult",
    "BatchResults",
    "Operation",
    "OperationBatch",
    "OperationKind",
    "OperationResult",
    "OperationStatus",
]
