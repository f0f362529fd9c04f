"""Operation and batch data structures for the parallel executor."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional


class OperationKind(str, Enum):
    """What an operation does to its repository."""
    CLONE = "clone"
    VALIDATE = "validate"
    FETCH = "fetch"
    RESOLVE_BRANCH = "resolve_branch"
    PRUNE = "prune"
    CREATE_WORKTREE = "create_worktree"
    REMOVE_WORKTREE = "remove_worktree"


class OperationStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # An earlier operation on the same repo failed


@dataclass
class Operation:
    """A unit of async work against one repository.

    Operations sharing a ``repo_key`` run in declared order; different keys
    may run concurrently.
    """
    id: str
    repo_key: str
    kind: OperationKind
    run: Callable[[], Awaitable[Any]]
    description: str = ""
    timeout: Optional[float] = None

    def __post_init__(self):
        if not self.description:
            self.description = f"{self.kind.value} ({self.repo_key})"


@dataclass
class OperationBatch:
    """Operations that may run together. Batches run strictly in order."""
    name: str
    operations: List[Operation] = field(default_factory=list)

    def __post_init__(self):
        ids = [op.id for op in self.operations]
        duplicates = {op_id for op_id in ids if ids.count(op_id) > 1}
        if duplicates:
            raise ValueError(f"Duplicate operation ids in batch '{self.name}': {sorted(duplicates)}")

    def by_repo(self) -> Dict[str, List[Operation]]:
        """Group operations by repo_key, preserving declared order."""
        groups: Dict[str, List[Operation]] = {}
        for op in self.operations:
            groups.setdefault(op.repo_key, []).append(op)
        return groups


@dataclass
class OperationResult:
    """How one operation settled."""
    id: str
    repo_key: str
    kind: OperationKind
    status: OperationStatus
    value: Any = None
    error: Optional[BaseException] = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == OperationStatus.SUCCEEDED


@dataclass
class BatchResult:
    """Settled results of one batch, keyed by operation id in declared order."""
    name: str
    results: Dict[str, OperationResult] = field(default_factory=dict)
    duration: float = 0.0

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results.values() if r.success)

    @property
    def failures(self) -> List[OperationResult]:
        return [r for r in self.results.values() if r.status == OperationStatus.FAILED]

    @property
    def failed(self) -> bool:
        return any(not r.success for r in self.results.values())


@dataclass
class BatchResults:
    """Results of an ordered run of batches."""
    batches: List[BatchResult] = field(default_factory=list)
    skipped_batches: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return any(b.failed for b in self.batches)

    @property
    def results(self) -> Dict[str, OperationResult]:
        merged: Dict[str, OperationResult] = {}
        for batch in self.batches:
            merged.update(batch.results)
        return merged

    @property
    def failures(self) -> List[OperationResult]:
        return [r for b in self.batches for r in b.failures]

    def get(self, operation_id: str) -> Optional[OperationResult]:
        return self.results.get(operation_id)

    def calculate_performance_stats(self) -> Dict[str, float]:
        """Duration and success statistics across every settled operation."""
        settled = [r for r in self.results.values() if r.status != OperationStatus.SKIPPED]
        if not settled:
            return {
                "total_duration": 0.0,
                "average_duration": 0.0,
                "success_rate": 0.0,
                "operation_count": 0,
            }

        total = sum(r.duration for r in settled)
        succeeded = sum(1 for r in settled if r.success)
        return {
            "total_duration": round(total, 3),
            "average_duration": round(total / len(settled), 3),
            "success_rate": round(succeeded / len(settled) * 100, 2),
            "operation_count": len(settled),
        }
