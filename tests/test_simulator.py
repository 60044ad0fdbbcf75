"""Tests for TransferSimulator."""
import asyncio
import random

import pytest
from uploadsim.models import SimulationOutcome, SimulatorConfig
from uploadsim.services.simulator import (
    SimulatedTransferError,
    SimulationHandle,
    TransferSimulator,
)


def fast_config(**overrides) -> SimulatorConfig:
    values = dict(total_steps=4, tick_interval=0, failure_rate=0.0, fail_after_step=1)
    values.update(overrides)
    return SimulatorConfig(**values)


class Recorder:
    """Collects simulator callbacks."""

    def __init__(self):
        self.progress = []
        self.errors = 0

    def on_progress(self, fraction):
        self.progress.append(fraction)

    def on_error(self):
        self.errors += 1


class TestProgressEvents:
    @pytest.mark.asyncio
    async def test_successful_run_ends_at_one(self):
        simulator = TransferSimulator(fast_config())

        values = [fraction async for fraction in simulator.progress_events("t1")]

        assert values == [0.25, 0.5, 0.75, 1.0]

    @pytest.mark.asyncio
    async def test_doomed_run_fails_after_threshold(self):
        config = SimulatorConfig(total_steps=20, tick_interval=0, failure_rate=1.0, fail_after_step=5)
        simulator = TransferSimulator(config)
        values = []

        with pytest.raises(SimulatedTransferError) as exc_info:
            async for fraction in simulator.progress_events("t1"):
                values.append(fraction)

        # Six ticks of progress, then the error on the seventh
        assert len(values) == 6
        assert values[-1] == pytest.approx(0.3)
        assert exc_info.value.step == 6
        assert exc_info.value.task_id == "t1"

    @pytest.mark.asyncio
    async def test_fractions_strictly_increase(self):
        simulator = TransferSimulator(fast_config(total_steps=20, fail_after_step=5))
        values = [fraction async for fraction in simulator.progress_events("t1")]
        assert all(a < b for a, b in zip(values, values[1:]))
        assert values[-1] == 1.0


class TestStart:
    @pytest.mark.asyncio
    async def test_success_reports_final_tick(self):
        simulator = TransferSimulator(fast_config())
        recorder = Recorder()

        handle = simulator.start("t1", recorder.on_progress, recorder.on_error)
        outcome = await handle.wait()

        assert isinstance(handle, SimulationHandle)
        assert outcome == SimulationOutcome.COMPLETED
        assert handle.outcome == SimulationOutcome.COMPLETED
        assert handle.done() is True
        assert recorder.progress == [0.25, 0.5, 0.75, 1.0]
        assert recorder.errors == 0

    @pytest.mark.asyncio
    async def test_failure_reports_error_once(self):
        simulator = TransferSimulator(fast_config(total_steps=20, failure_rate=1.0, fail_after_step=5))
        recorder = Recorder()

        handle = simulator.start("t1", recorder.on_progress, recorder.on_error)
        outcome = await handle.wait()

        assert outcome == SimulationOutcome.FAILED
        assert recorder.errors == 1
        assert len(recorder.progress) == 6
        assert 1.0 not in recorder.progress

    @pytest.mark.asyncio
    async def test_exactly_one_terminal_signal_per_run(self):
        simulator = TransferSimulator(
            fast_config(total_steps=10, failure_rate=0.5, fail_after_step=3),
            rng=random.Random(7),
        )
        recorders = [Recorder() for _ in range(30)]
        handles = [
            simulator.start(f"t{i}", r.on_progress, r.on_error)
            for i, r in enumerate(recorders)
        ]

        await asyncio.gather(*(h.wait() for h in handles))

        for recorder in recorders:
            completed = bool(recorder.progress) and recorder.progress[-1] == 1.0
            failed = recorder.errors == 1
            assert completed != failed
            assert recorder.errors <= 1

    @pytest.mark.asyncio
    async def test_cancel_stops_callbacks(self):
        simulator = TransferSimulator(fast_config(total_steps=50, tick_interval=0.01))
        recorder = Recorder()

        handle = simulator.start("t1", recorder.on_progress, recorder.on_error)
        await asyncio.sleep(0.035)
        handle.cancel()
        seen = len(recorder.progress)
        outcome = await handle.wait()
        await asyncio.sleep(0.03)

        assert outcome == SimulationOutcome.CANCELLED
        assert handle.cancelled is True
        assert len(recorder.progress) == seen
        assert 1.0 not in recorder.progress
        assert recorder.errors == 0

    @pytest.mark.asyncio
    async def test_cancel_before_first_tick(self):
        simulator = TransferSimulator(fast_config())
        recorder = Recorder()

        handle = simulator.start("t1", recorder.on_progress, recorder.on_error)
        handle.cancel()
        handle.cancel()  # idempotent

        assert await handle.wait() == SimulationOutcome.CANCELLED
        assert recorder.progress == []
        assert recorder.errors == 0

    @pytest.mark.asyncio
    async def test_done_callback_fires(self):
        simulator = TransferSimulator(fast_config())
        finished = []

        handle = simulator.start("t1", lambda f: None, lambda: None)
        handle.add_done_callback(finished.append)
        await handle.wait()
        await asyncio.sleep(0)

        assert finished == [handle]

        # Already done: called immediately
        late = []
        handle.add_done_callback(late.append)
        assert late == [handle]

    def test_start_requires_running_loop(self):
        simulator = TransferSimulator(fast_config())
        with pytest.raises(RuntimeError):
            simulator.start("t1", lambda f: None, lambda: None)


class TestRandomness:
    def test_seeded_runs_repeat(self):
        config = SimulatorConfig(failure_rate=0.5)
        first = TransferSimulator(config, rng=random.Random(42))
        second = TransferSimulator(config, rng=random.Random(42))
        assert [first.will_fail() for _ in range(20)] == [second.will_fail() for _ in range(20)]

    def test_failure_rate_bounds(self):
        never = TransferSimulator(SimulatorConfig(failure_rate=0.0))
        always = TransferSimulator(SimulatorConfig(failure_rate=1.0))
        assert not any(never.will_fail() for _ in range(50))
        assert all(always.will_fail() for _ in range(50))
