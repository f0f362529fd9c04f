"""Tests for ParallelOperationExecutor scheduling semantics."""

import asyncio

import pytest

from branchspace.errors.exceptions import OperationTimeoutError
from branchspace.workflow.executor import ParallelOperationExecutor
from branchspace.workflow.operations import (
    Operation,
    OperationBatch,
    OperationKind,
    OperationStatus,
)


def make_op(op_id, repo_key, run, kind=OperationKind.VALIDATE, timeout=None):
    return Operation(id=op_id, repo_key=repo_key, kind=kind, run=run, timeout=timeout)


def recorder(log, name, delay=0.0, result=None, error=None):
    async def run():
        log.append(f"start:{name}")
        await asyncio.sleep(delay)
        log.append(f"end:{name}")
        if error is not None:
            raise error
        return result
    return run


class TestOperationBatch:

    def test_duplicate_ids_rejected(self):
        async def noop():
            return None

        with pytest.raises(ValueError, match="Duplicate"):
            OperationBatch("b", [make_op("x", "a", noop), make_op("x", "b", noop)])

    def test_by_repo_preserves_order(self):
        async def noop():
            return None

        batch = OperationBatch("b", [
            make_op("1", "a", noop), make_op("2", "b", noop), make_op("3", "a", noop)
        ])
        groups = batch.by_repo()
        assert [op.id for op in groups["a"]] == ["1", "3"]
        assert [op.id for op in groups["b"]] == ["2"]

    def test_default_description(self):
        async def noop():
            return None

        op = make_op("1", "primary", noop, kind=OperationKind.FETCH)
        assert op.description == "fetch (primary)"


class TestExecuteBatch:

    @pytest.mark.asyncio
    async def test_different_repos_run_concurrently(self):
        log = []
        executor = ParallelOperationExecutor(concurrency_limit=4)
        batch = OperationBatch("b", [
            make_op("a", "a", recorder(log, "a", 0.05)),
            make_op("b", "b", recorder(log, "b", 0.05)),
        ])

        await executor.execute_batch(batch)

        # Both started before either finished
        assert log[:2] == ["start:a", "start:b"]

    @pytest.mark.asyncio
    async def test_same_repo_runs_in_declared_order(self):
        log = []
        executor = ParallelOperationExecutor(concurrency_limit=4)
        batch = OperationBatch("b", [
            make_op("first", "a", recorder(log, "first", 0.05)),
            make_op("second", "a", recorder(log, "second")),
        ])

        await executor.execute_batch(batch)

        assert log == ["start:first", "end:first", "start:second", "end:second"]

    @pytest.mark.asyncio
    async def test_failure_skips_rest_of_same_repo_only(self):
        log = []
        executor = ParallelOperationExecutor()
        batch = OperationBatch("b", [
            make_op("a1", "a", recorder(log, "a1", error=RuntimeError("boom"))),
            make_op("a2", "a", recorder(log, "a2")),
            make_op("b1", "b", recorder(log, "b1", result="ok")),
        ])

        result = await executor.execute_batch(batch)

        assert result.results["a1"].status == OperationStatus.FAILED
        assert str(result.results["a1"].error) == "boom"
        assert result.results["a2"].status == OperationStatus.SKIPPED
        assert result.results["b1"].status == OperationStatus.SUCCEEDED
        assert result.results["b1"].value == "ok"
        assert "start:a2" not in log

    @pytest.mark.asyncio
    async def test_failure_does_not_cancel_siblings(self):
        log = []
        executor = ParallelOperationExecutor()
        batch = OperationBatch("b", [
            make_op("fast-fail", "a", recorder(log, "fast-fail", error=RuntimeError("x"))),
            make_op("slow", "b", recorder(log, "slow", 0.1, result=1)),
        ])

        result = await executor.execute_batch(batch)

        assert "end:slow" in log
        assert result.results["slow"].success

    @pytest.mark.asyncio
    async def test_results_in_declared_order(self):
        log = []
        executor = ParallelOperationExecutor()
        batch = OperationBatch("b", [
            make_op("slow", "a", recorder(log, "slow", 0.05)),
            make_op("fast", "b", recorder(log, "fast")),
        ])

        result = await executor.execute_batch(batch)

        assert list(result.results) == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_semaphore_bounds_concurrency(self):
        running = 0
        peak = 0

        def tracked():
            async def run():
                nonlocal running, peak
                running += 1
                peak = max(peak, running)
                await asyncio.sleep(0.02)
                running -= 1
            return run

        executor = ParallelOperationExecutor(concurrency_limit=2)
        batch = OperationBatch("b", [make_op(str(i), f"repo{i}", tracked()) for i in range(6)])

        await executor.execute_batch(batch)

        assert peak == 2

    @pytest.mark.asyncio
    async def test_sequential_limit_of_one(self):
        log = []
        executor = ParallelOperationExecutor(concurrency_limit=1)
        batch = OperationBatch("b", [
            make_op("a", "a", recorder(log, "a", 0.02)),
            make_op("b", "b", recorder(log, "b", 0.02)),
        ])

        await executor.execute_batch(batch)

        assert log == ["start:a", "end:a", "start:b", "end:b"]

    @pytest.mark.asyncio
    async def test_timeout_fails_only_that_operation(self):
        log = []
        executor = ParallelOperationExecutor()
        batch = OperationBatch("b", [
            make_op("hang", "a", recorder(log, "hang", 5), timeout=0.05),
            make_op("ok", "b", recorder(log, "ok", result=True)),
        ])

        result = await executor.execute_batch(batch)

        error = result.results["hang"].error
        assert isinstance(error, OperationTimeoutError)
        assert error.operation_id == "hang"
        assert result.results["ok"].success

    def test_invalid_concurrency_limit(self):
        with pytest.raises(ValueError):
            ParallelOperationExecutor(concurrency_limit=0)


class TestProgressCallbacks:

    @pytest.mark.asyncio
    async def test_callbacks_receive_operation_ids(self):
        started, completed = [], []
        executor = ParallelOperationExecutor(
            on_step_start=started.append, on_step_complete=completed.append
        )
        batch = OperationBatch("b", [make_op("validate:primary", "primary", recorder([], "x"))])

        await executor.execute_batch(batch)

        assert started == ["validate:primary"]
        assert completed == ["validate:primary"]

    @pytest.mark.asyncio
    async def test_callback_exceptions_are_ignored(self):
        def explode(_op_id):
            raise RuntimeError("ui broke")

        executor = ParallelOperationExecutor(on_step_start=explode, on_step_complete=explode)
        batch = OperationBatch("b", [make_op("x", "a", recorder([], "x", result=42))])

        result = await executor.execute_batch(batch)

        assert result.results["x"].value == 42


class TestExecuteBatches:

    @pytest.mark.asyncio
    async def test_batch_failure_prevents_later_batches(self):
        log = []
        executor = ParallelOperationExecutor()
        batches = [
            OperationBatch("one", [make_op("1", "a", recorder(log, "1", error=RuntimeError("x")))]),
            OperationBatch("two", [make_op("2", "b", recorder(log, "2"))]),
            OperationBatch("three", [make_op("3", "b", recorder(log, "3"))]),
        ]

        results = await executor.execute_batches(batches)

        assert results.failed
        assert "start:2" not in log
        assert results.skipped_batches == ["two", "three"]
        assert results.get("2") is None

    @pytest.mark.asyncio
    async def test_batches_run_strictly_in_order(self):
        log = []
        executor = ParallelOperationExecutor()
        batches = [
            OperationBatch("one", [
                make_op("slow", "a", recorder(log, "slow", 0.05)),
                make_op("fast", "b", recorder(log, "fast")),
            ]),
            OperationBatch("two", [make_op("next", "b", recorder(log, "next"))]),
        ]

        await executor.execute_batches(batches)

        assert log.index("end:slow") < log.index("start:next")

    @pytest.mark.asyncio
    async def test_continue_on_failure(self):
        log = []
        executor = ParallelOperationExecutor()
        batches = [
            OperationBatch("one", [make_op("1", "a", recorder(log, "1", error=RuntimeError("x")))]),
            OperationBatch("two", [make_op("2", "b", recorder(log, "2"))]),
        ]

        results = await executor.execute_batches(batches, continue_on_failure=True)

        assert "start:2" in log
        assert len(results.failures) == 1
        assert results.skipped_batches == []

    @pytest.mark.asyncio
    async def test_on_batch_settled_called_per_batch(self):
        settled = []
        executor = ParallelOperationExecutor()
        batches = [
            OperationBatch("one", [make_op("1", "a", recorder([], "1"))]),
            OperationBatch("two", [make_op("2", "a", recorder([], "2"))]),
        ]

        await executor.execute_batches(batches, on_batch_settled=lambda b: settled.append(b.name))

        assert settled == ["one", "two"]

    @pytest.mark.asyncio
    async def test_performance_stats(self):
        executor = ParallelOperationExecutor()
        batches = [
            OperationBatch("one", [
                make_op("ok", "a", recorder([], "ok")),
                make_op("bad", "b", recorder([], "bad", error=RuntimeError("x"))),
            ]),
        ]

        results = await executor.execute_batches(batches)
        stats = results.calculate_performance_stats()

        assert stats["operation_count"] == 2
        assert stats["success_rate"] == 50.0
        assert stats["total_duration"] >= 0

    def test_empty_stats(self):
        from branchspace.workflow.operations import BatchResults

        stats = BatchResults().calculate_performance_stats()
        assert stats["operation_count"] == 0
        assert stats["success_rate"] == 0.0
