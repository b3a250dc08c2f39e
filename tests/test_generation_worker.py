"""
Tests for the background generation worker and the keyed locks.
"""

import asyncio

import pytest

from recruitment_interviews.orchestrator import GenerationWorker, KeyedLocks


class TestGenerationWorker:
    """Tests for GenerationWorker."""

    @pytest.mark.asyncio
    async def test_submit_does_not_wait_for_the_job(self) -> None:
        """Test that submit returns while the job is still running."""
        worker = GenerationWorker()
        release = asyncio.Event()

        async def job() -> str:
            await release.wait()
            return "generated"

        worker.submit("job", job)
        await asyncio.sleep(0)

        assert worker.pending == 1
        assert worker.stats.in_flight == 1

        release.set()
        await worker.drain()

        assert worker.pending == 0
        assert worker.stats.completed == 1
        assert worker.stats.outcomes["generated"] == 1

    @pytest.mark.asyncio
    async def test_failing_job_is_contained(self) -> None:
        """Test that a job exception is counted and not propagated."""
        worker = GenerationWorker()

        async def job() -> str:
            raise RuntimeError("boom")

        task = worker.submit("job", job)
        await worker.drain()

        assert task.exception() is None
        assert worker.stats.failed == 1
        assert worker.stats.completed == 0

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        """Test that no more than ``concurrency`` jobs run at once."""
        worker = GenerationWorker(concurrency=2)
        running = 0
        peak = 0

        async def job() -> str:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return "generated"

        for index in range(6):
            worker.submit(f"job-{index}", job)
        await worker.drain()

        assert peak == 2
        assert worker.stats.completed == 6

    @pytest.mark.asyncio
    async def test_drain_waits_for_jobs_submitted_meanwhile(self) -> None:
        """Test that drain also covers jobs scheduled by other jobs."""
        worker = GenerationWorker()

        async def second() -> str:
            return "second"

        async def first() -> str:
            worker.submit("second", second)
            return "first"

        worker.submit("first", first)
        await worker.drain()

        assert worker.stats.outcomes == {"first": 1, "second": 1}

    @pytest.mark.asyncio
    async def test_shutdown_cancels_and_rejects_new_jobs(self) -> None:
        """Test that shutdown cancels outstanding jobs and closes the worker."""
        worker = GenerationWorker()

        async def job() -> str:
            await asyncio.sleep(60)
            return "generated"

        worker.submit("slow", job)
        await asyncio.sleep(0)
        await worker.shutdown(cancel=True)

        assert worker.stats.cancelled == 1
        with pytest.raises(RuntimeError, match="shut down"):
            worker.submit("late", job)

    def test_concurrency_must_be_positive(self) -> None:
        """Test that a zero-sized pool is rejected."""
        with pytest.raises(ValueError):
            GenerationWorker(concurrency=0)


class TestKeyedLocks:
    """Tests for KeyedLocks."""

    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self) -> None:
        """Test that holders of one key never overlap."""
        locks = KeyedLocks()
        events: list[str] = []

        async def hold(name: str) -> None:
            async with locks.hold("interview-1"):
                events.append(f"{name}:in")
                await asyncio.sleep(0.01)
                events.append(f"{name}:out")

        await asyncio.gather(hold("a"), hold("b"))

        assert events in (
            ["a:in", "a:out", "b:in", "b:out"],
            ["b:in", "b:out", "a:in", "a:out"],
        )
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_keys_run_together(self) -> None:
        """Test that different keys do not block each other."""
        locks = KeyedLocks()
        inside = asyncio.Event()

        async def first() -> None:
            async with locks.hold("a"):
                await asyncio.wait_for(inside.wait(), timeout=1)

        async def second() -> None:
            async with locks.hold("b"):
                inside.set()

        await asyncio.gather(first(), second())
        assert len(locks) == 0
