import asyncio

import pytest

from relay_review.services.cancellation import (
    CancellationSignal,
    OperationCancelled,
    OperationTimedOut,
    run_cancellable,
)


@pytest.mark.asyncio
async def test_signal_fires_once_and_keeps_first_reason():
    signal = CancellationSignal("caller")
    signal.cancel("navigation")
    signal.cancel("timeout", source="later")

    assert signal.cancelled
    assert signal.reason == "navigation"
    assert signal.source == "caller"
    assert not signal.timed_out


@pytest.mark.asyncio
async def test_composed_signal_records_first_source():
    caller = CancellationSignal("caller")
    composed = CancellationSignal.with_timeout(caller, 10, "thread")

    caller.cancel()

    assert composed.cancelled
    assert composed.source == "caller"
    assert not composed.timed_out
    composed.dispose()


@pytest.mark.asyncio
async def test_timeout_wins_over_idle_caller():
    caller = CancellationSignal("caller")
    composed = CancellationSignal.with_timeout(caller, 0.01, "user-stats")

    await composed.wait()

    assert composed.timed_out
    assert composed.source == "user-stats-timeout"
    assert not caller.cancelled


@pytest.mark.asyncio
async def test_run_cancellable_returns_result_without_signal():
    async def work():
        return 42

    assert await run_cancellable(work(), None) == 42


@pytest.mark.asyncio
async def test_run_cancellable_abandons_slow_work_on_timeout():
    finished = []

    async def slow():
        await asyncio.sleep(1)
        finished.append(True)

    with pytest.raises(OperationTimedOut):
        await run_cancellable(slow(), CancellationSignal.timeout(0.01))

    await asyncio.sleep(0)
    assert finished == []


@pytest.mark.asyncio
async def test_already_cancelled_signal_raises_immediately():
    signal = CancellationSignal()
    signal.cancel()

    async def work():
        return "late"

    with pytest.raises(OperationCancelled) as excinfo:
        await run_cancellable(work(), signal)

    assert not isinstance(excinfo.value, OperationTimedOut)


@pytest.mark.asyncio
async def test_dispose_stops_pending_timeout():
    signal = CancellationSignal.with_timeout(None, 0.01, "profile")
    signal.dispose()

    await asyncio.sleep(0.03)

    assert not signal.cancelled


@pytest.mark.asyncio
async def test_disposed_children_detach_from_long_lived_caller():
    caller = CancellationSignal("caller")
    children = [CancellationSignal.with_timeout(caller, 10, f"fetch-{i}") for i in range(50)]

    for child in children:
        child.dispose()
    caller.cancel()

    assert caller._callbacks == []
    assert not any(child.cancelled for child in children)
