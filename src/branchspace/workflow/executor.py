"""Bounded-concurrency executor for batches of repository operations."""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence

from ..errors.exceptions import OperationTimeoutError
from ..utils.error_handling import safe_call
from .operations import (
    BatchResult,
    BatchResults,
    Operation,
    OperationBatch,
    OperationResult,
    OperationStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY_LIMIT = 4


class ParallelOperationExecutor:
    """Runs operation batches in order, operations within a batch concurrently.

    Rules:
    - A semaphore bounds how many operations run at once.
    - Operations sharing a repo_key run in declared order; after one fails the
      rest of that key's operations in the batch are SKIPPED.
    - Sibling failures never cancel each other: every operation settles.
    - Batch N+1 starts only after every operation of batch N has settled.
    - Errors are caught at the operation boundary and returned as values.
    """

    def __init__(
        self,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
        on_step_start: Optional[Callable[[str], None]] = None,
        on_step_complete: Optional[Callable[[str], None]] = None,
    ):
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")
        self.concurrency_limit = concurrency_limit
        self.on_step_start = on_step_start
        self.on_step_complete = on_step_complete

    async def execute_batches(
        self,
        batches: Sequence[OperationBatch],
        continue_on_failure: bool = False,
        on_batch_settled: Optional[Callable[[BatchResult], None]] = None,
    ) -> BatchResults:
        """
        Execute batches in declared order.

        Args:
            batches: Batches to run
            continue_on_failure: Keep going after a batch with failures
            on_batch_settled: Called with each batch's result once it settles

        Returns:
            BatchResults; batches never started are listed in skipped_batches
        """
        logger.debug(f"Executing {len(batches)} operation batches")
        results = BatchResults()

        for index, batch in enumerate(batches):
            batch_result = await self.execute_batch(batch)
            results.batches.append(batch_result)

            if on_batch_settled is not None:
                on_batch_settled(batch_result)

            if batch_result.failed and not continue_on_failure:
                remaining = [b.name for b in batches[index + 1:]]
                if remaining:
                    logger.info(
                        f"Batch '{batch.name}' failed; not starting: {', '.join(remaining)}"
                    )
                results.skipped_batches.extend(remaining)
                break

        return results

    async def execute_batch(self, batch: OperationBatch) -> BatchResult:
        """Run one batch with settle-all semantics."""
        start = time.monotonic()
        semaphore = asyncio.Semaphore(self.concurrency_limit)
        settled: Dict[str, OperationResult] = {}

        groups = batch.by_repo()
        logger.debug(
            f"Batch '{batch.name}': {len(batch.operations)} operation(s) "
            f"across {len(groups)} repo(s)"
        )

        async def run_group(operations: List[Operation]) -> None:
            failed = False
            for op in operations:
                if failed:
                    settled[op.id] = OperationResult(
                        id=op.id,
                        repo_key=op.repo_key,
                        kind=op.kind,
                        status=OperationStatus.SKIPPED,
                    )
                    logger.debug(f"  Skipped: {op.description}")
                    continue
                async with semaphore:
                    result = await self._execute_operation(op)
                settled[op.id] = result
                failed = not result.success

        await asyncio.gather(*(run_group(ops) for ops in groups.values()))

        # Report in declared order regardless of completion order
        ordered = {op.id: settled[op.id] for op in batch.operations}
        batch_result = BatchResult(
            name=batch.name, results=ordered, duration=time.monotonic() - start
        )

        failure_count = len(batch_result.failures)
        if failure_count:
            logger.warning(
                f"Batch '{batch.name}' completed with {failure_count} failure(s) "
                f"({batch_result.duration:.2f}s)"
            )
        else:
            logger.debug(
                f"Batch '{batch.name}' completed: {batch_result.success_count} succeeded "
                f"({batch_result.duration:.2f}s)"
            )
        return batch_result

    async def _execute_operation(self, op: Operation) -> OperationResult:
        """Run a single operation, converting any exception into a result."""
        safe_call(self.on_step_start, op.id, error_message="on_step_start callback failed")
        logger.debug(f"  Starting: {op.description}")
        start = time.monotonic()

        try:
            if op.timeout is not None:
                try:
                    value = await asyncio.wait_for(op.run(), timeout=op.timeout)
                except asyncio.TimeoutError:
                    raise OperationTimeoutError(op.id, op.timeout)
            else:
                value = await op.run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            duration = time.monotonic() - start
            logger.debug(f"  Failed: {op.description} ({duration:.2f}s): {e}")
            result = OperationResult(
                id=op.id,
                repo_key=op.repo_key,
                kind=op.kind,
                status=OperationStatus.FAILED,
                error=e,
                duration=duration,
            )
        else:
            duration = time.monotonic() - start
            logger.debug(f"  Completed: {op.description} ({duration:.2f}s)")
            result = OperationResult(
                id=op.id,
                repo_key=op.repo_key,
                kind=op.kind,
                status=OperationStatus.SUCCEEDED,
                value=value,
                duration=duration,
            )

        safe_call(self.on_step_complete, op.id, error_message="on_step_complete callback failed")
        return result
