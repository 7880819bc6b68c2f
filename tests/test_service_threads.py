"""Concurrency tests for SimulationService background runs.

These tests verify that the background run, manual steps from other threads
and stop requests share the simulation without corrupting it, and that no
step happens once a stop has returned.
"""

import asyncio
import threading
from contextlib import aclosing

import pytest

from hyperevolve.service import FIXED_POINT_MESSAGE, SimulationService


class TestBackgroundRun:
    """Tests for start_run / run / stop."""

    @pytest.mark.asyncio
    async def test_updates_are_consecutive(self, service):
        service.initialize(example="triangle")
        updates = []
        async for update in service.start_run(update_interval_ms=0):
            updates.append(update)
            if len(updates) == 5:
                break
        service.stop()

        assert [u.step_number for u in updates] == [1, 2, 3, 4, 5]
        assert all(u.running for u in updates)
        assert [len(u.state.atoms) for u in updates] == [4, 5, 6, 7, 8]
        assert updates[-1].recent_events[-1].step_number == 5

    @pytest.mark.asyncio
    async def test_no_step_after_stop(self, service):
        service.initialize(example="triangle")
        channel = service.start_run(update_interval_ms=0)
        await channel.get()

        final = service.stop()
        await asyncio.sleep(0.05)

        assert not service.is_running
        assert service.get_current_state() == final.final_state
        assert final.message == "Simulation stopped"

    @pytest.mark.asyncio
    async def test_published_updates_form_prefix(self, service):
        service.initialize(example="triangle")
        channel = service.start_run(update_interval_ms=0)
        await asyncio.sleep(0.02)
        final = service.stop()

        steps = []
        while (update := await channel.get()) is not None:
            steps.append(update.step_number)
        assert steps == list(range(1, len(steps) + 1))
        assert steps[-1] <= final.final_state.step_number

    @pytest.mark.asyncio
    async def test_fixed_point_ends_run(self, deleting_rules, tmp_path):
        service = SimulationService(
            rules=deleting_rules, save_directory=tmp_path, min_update_interval_ms=0
        )
        service.initialize(example="triangle")

        updates = [u async for u in service.run(update_interval_ms=0)]

        assert [u.step_number for u in updates] == [1, 2, 3, 3]
        assert [u.running for u in updates] == [True, True, True, False]
        assert updates[-1].status_message == FIXED_POINT_MESSAGE
        assert not service.is_running

    @pytest.mark.asyncio
    async def test_slow_subscriber_ends_run(self, tmp_path):
        service = SimulationService(
            save_directory=tmp_path, channel_capacity=2, min_update_interval_ms=0
        )
        service.initialize(example="triangle")

        service.start_run(update_interval_ms=0)
        await service.wait()

        # Two updates fit in the buffer; the third step's publish fails
        assert service.get_current_state().step_number == 3
        assert not service.is_running

    @pytest.mark.asyncio
    async def test_closing_stream_ends_run(self, service):
        service.initialize(example="single_edge")
        async with aclosing(service.run(update_interval_ms=0)) as stream:
            async for _ in stream:
                break
        await service.wait()
        assert not service.is_running

    @pytest.mark.asyncio
    async def test_new_run_aborts_previous(self, service):
        service.initialize(example="triangle")
        first = service.start_run(update_interval_ms=0)
        second = service.start_run(update_interval_ms=0)

        assert first.closed
        assert await first.get() is None
        update = await second.get()
        assert update.step_number == 1
        service.stop()

    @pytest.mark.asyncio
    async def test_minimum_interval_applied(self, tmp_path):
        service = SimulationService(save_directory=tmp_path, min_update_interval_ms=50)
        service.initialize(example="single_edge")
        channel = service.start_run(update_interval_ms=0)
        await channel.get()
        await asyncio.sleep(0.01)
        assert service.get_current_state().step_number == 1
        service.stop()

    @pytest.mark.asyncio
    async def test_initialize_stops_run(self, service):
        service.initialize(example="triangle")
        channel = service.start_run(update_interval_ms=0)
        await channel.get()
        response = service.initialize(example="single_edge")
        await asyncio.sleep(0.02)
        assert response.success
        assert not service.is_running
        assert service.get_current_state().step_number == 0

    @pytest.mark.asyncio
    async def test_stop_from_other_thread(self, service):
        service.initialize(example="triangle")
        channel = service.start_run(update_interval_ms=10)
        await channel.get()

        loop = asyncio.get_running_loop()
        final = await loop.run_in_executor(None, service.stop)
        await asyncio.sleep(0.05)

        assert not service.is_running
        assert service.get_current_state().step_number == final.final_state.step_number

    @pytest.mark.asyncio
    async def test_manual_steps_during_run(self, service):
        service.initialize(example="triangle")
        channel = service.start_run(update_interval_ms=5)
        await channel.get()

        loop = asyncio.get_running_loop()
        await asyncio.gather(*[loop.run_in_executor(None, service.step, 2) for _ in range(5)])
        service.stop()

        state = service.get_current_state()
        assert len(state.atoms) == 3 + state.step_number
        assert len(state.relations) == 3 + state.step_number
        events = service.recent_events(limit=1000)
        assert [e.step_number for e in events] == list(range(1, state.step_number + 1))

    def test_start_run_requires_event_loop(self, service):
        with pytest.raises(RuntimeError):
            service.start_run()


class TestManualStepThreadSafety:
    """Manual steps from many threads share one simulation safely."""

    def test_concurrent_steps_no_corruption(self, service):
        service.initialize(example="triangle")
        errors: list[Exception] = []

        def step_many():
            try:
                for _ in range(10):
                    service.step()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=step_many) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors, f"Errors during concurrent steps: {errors}"
        stats = service.stats()
        assert stats.step_number == 80
        assert stats.atom_count == 83
        assert stats.relation_count == 83
        assert stats.event_count == 80

    def test_concurrent_save_and_step(self, service, tmp_path):
        service.initialize(example="single_edge")
        errors: list[Exception] = []
        saved: list[str] = []

        def stepper():
            try:
                for _ in range(20):
                    service.step()
            except Exception as e:
                errors.append(e)

        def saver(index):
            try:
                response = service.save(str(tmp_path / f"snap_{index}.json"))
                assert response.success
                saved.append(response.path)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=stepper)]
        threads += [threading.Thread(target=saver, args=(i,)) for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        for path in saved:
            assert service.load(path=path).success
