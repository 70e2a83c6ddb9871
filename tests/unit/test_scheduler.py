"""Unit tests for the start scheduler."""

import asyncio

import pytest

from dockertest.core.keeper import Keeper
from dockertest.models.container import PendingContainer, RunningContainer
from dockertest.models.errors import DaemonError, ProcessingError, StageFailure
from dockertest.models.policies import StartPolicy
from dockertest.services.engine import ContainerSpec
from dockertest.services.scheduler import start_containers
from dockertest.services.waitfor import CustomWait, NoWait

STRICT = StartPolicy.STRICT
RELAXED = StartPolicy.RELAXED


async def make_pending(engine, declared, wait=None):
    """Create one engine container per (handle, policy) and wrap them in a Keeper."""
    pending = []
    for handle, policy in declared:
        name = f"dockertest-rs-{handle}-suffix"
        container_id = await engine.create_container(ContainerSpec(name=name, image="img"))
        pending.append(
            PendingContainer(
                name=name,
                id=container_id,
                handle=handle,
                start_policy=policy,
                wait=wait or NoWait(),
                engine=engine,
            )
        )
    return Keeper.build(pending, lambda c: c.handle)


class TestStartOrdering:
    """Test that results come back in declaration order."""

    @pytest.mark.asyncio
    async def test_mixed_policies_keep_declaration_order(self, fake_engine):
        """[A strict, B relaxed, C strict, D relaxed] always returns [A, B, C, D]."""
        fake_engine.start_delays = {"b": 0.05, "d": 0.01}
        pending = await make_pending(
            fake_engine, [("a", STRICT), ("b", RELAXED), ("c", STRICT), ("d", RELAXED)]
        )

        running = await start_containers(pending)

        assert [c.handle for c in running] == ["a", "b", "c", "d"]
        assert all(isinstance(c, RunningContainer) for c in running)
        assert running.resolve("b").id == pending.resolve("b").id

    @pytest.mark.asyncio
    async def test_relaxed_completion_order_does_not_matter(self, fake_engine):
        fake_engine.start_delays = {"first": 0.05}
        pending = await make_pending(
            fake_engine, [("first", RELAXED), ("second", RELAXED), ("third", RELAXED)]
        )

        running = await start_containers(pending)

        # second and third finished before first
        assert fake_engine.started_names()[-1] == "dockertest-rs-first-suffix"
        assert [c.handle for c in running] == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_strict_start_sequentially(self, fake_engine):
        fake_engine.start_delays = {"a": 0.03}
        pending = await make_pending(fake_engine, [("a", STRICT), ("b", STRICT), ("c", STRICT)])

        await start_containers(pending)

        assert fake_engine.started_names() == [
            "dockertest-rs-a-suffix",
            "dockertest-rs-b-suffix",
            "dockertest-rs-c-suffix",
        ]

    @pytest.mark.asyncio
    async def test_strict_waits_for_readiness_before_next(self, fake_engine):
        ready = []

        async def wait(container):
            ready.append(container.handle)
            return container.into_running()

        pending = await make_pending(fake_engine, [("a", STRICT), ("b", STRICT)], CustomWait(wait))

        await start_containers(pending)

        assert ready == ["a", "b"]

    @pytest.mark.asyncio
    async def test_collision_table_survives(self, fake_engine):
        pending = await make_pending(fake_engine, [("db", STRICT), ("db", RELAXED)])

        running = await start_containers(pending)

        assert running.is_collision("db")
        assert len(running) == 2


class TestStartFailures:
    """Test failure semantics of the scheduler."""

    @pytest.mark.asyncio
    async def test_strict_failure_skips_later_strict(self, fake_engine):
        """If C fails, no strict container declared after C is started."""
        fake_engine.fail_start = {"c"}
        pending = await make_pending(
            fake_engine,
            [("a", STRICT), ("b", RELAXED), ("c", STRICT), ("d", RELAXED), ("e", STRICT)],
        )

        with pytest.raises(StageFailure) as exc_info:
            await start_containers(pending)

        started = fake_engine.started_names()
        assert "dockertest-rs-e-suffix" not in started
        # Relaxed containers still attempted to start
        assert "dockertest-rs-b-suffix" in started
        assert "dockertest-rs-d-suffix" in started
        assert isinstance(exc_info.value.error, DaemonError)
        assert "dockertest-rs-c-suffix" in exc_info.value.error.message

    @pytest.mark.asyncio
    async def test_cleanup_contains_every_created_container(self, fake_engine):
        fake_engine.fail_start = {"a"}
        pending = await make_pending(
            fake_engine, [("a", STRICT), ("b", RELAXED), ("c", STRICT)]
        )

        with pytest.raises(StageFailure) as exc_info:
            await start_containers(pending)

        cleanup_ids = {c.id for c in exc_info.value.cleanup}
        assert cleanup_ids == {c.id for c in pending}

    @pytest.mark.asyncio
    async def test_strict_error_wins_over_relaxed(self, fake_engine):
        """The strict error is reported even when a relaxed one happened first."""
        fake_engine.fail_start = {"relaxed", "strict"}
        fake_engine.start_delays = {"strict": 0.05}
        pending = await make_pending(fake_engine, [("relaxed", RELAXED), ("strict", STRICT)])

        with pytest.raises(StageFailure) as exc_info:
            await start_containers(pending)

        assert "strict-suffix" in exc_info.value.error.message
        assert "relaxed" not in exc_info.value.error.message

    @pytest.mark.asyncio
    async def test_relaxed_errors_reported_in_declaration_order(self, fake_engine):
        fake_engine.fail_start = {"one", "two"}
        fake_engine.start_delays = {"one": 0.05}
        pending = await make_pending(fake_engine, [("one", RELAXED), ("two", RELAXED)])

        with pytest.raises(StageFailure) as exc_info:
            await start_containers(pending)

        assert "one-suffix" in exc_info.value.error.message

    @pytest.mark.asyncio
    async def test_relaxed_failure_still_starts_strict(self, fake_engine):
        fake_engine.fail_start = {"b"}
        pending = await make_pending(fake_engine, [("a", STRICT), ("b", RELAXED), ("c", STRICT)])

        with pytest.raises(StageFailure):
            await start_containers(pending)

        assert "dockertest-rs-c-suffix" in fake_engine.started_names()

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_processing_error(self, fake_engine):
        async def broken(container):
            raise RuntimeError("boom")

        pending = await make_pending(fake_engine, [("a", RELAXED)], CustomWait(broken))

        with pytest.raises(StageFailure) as exc_info:
            await start_containers(pending)

        assert isinstance(exc_info.value.error, ProcessingError)
        assert "boom" in exc_info.value.error.message

    @pytest.mark.asyncio
    async def test_interrupted_strict_start_cancels_relaxed(self, fake_engine):
        """An interruption from a strict start is carried unchanged with full cleanup."""

        async def wait(container):
            if container.handle == "slow":
                await asyncio.sleep(10)
            pytest.fail("readiness assertion")

        pending = await make_pending(
            fake_engine, [("slow", RELAXED), ("a", STRICT)], CustomWait(wait)
        )

        with pytest.raises(StageFailure) as exc_info:
            await asyncio.wait_for(start_containers(pending), timeout=5)

        assert isinstance(exc_info.value.error, pytest.fail.Exception)
        assert {c.id for c in exc_info.value.cleanup} == {c.id for c in pending}
