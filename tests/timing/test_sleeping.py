import asyncio

from kreconcile.engines.sleeping import sleep_or_wait


async def test_sleep_without_event(timer):
    with timer:
        unslept = await sleep_or_wait(0.1)
    assert unslept is None
    assert 0.1 <= timer.seconds < 0.3


async def test_sleep_with_event_that_is_never_set(timer):
    event = asyncio.Event()
    with timer:
        unslept = await sleep_or_wait(0.1, event)
    assert unslept is None
    assert 0.1 <= timer.seconds < 0.3


async def test_sleep_interrupted_by_event(timer):
    event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.1, event.set)
    with timer:
        unslept = await sleep_or_wait(1.0, event)
    assert unslept is not None
    assert 0.7 < unslept < 0.95
    assert timer.seconds < 0.3


async def test_sleep_with_event_initially_set(timer):
    event = asyncio.Event()
    event.set()
    with timer:
        unslept = await sleep_or_wait(10, event)
    assert unslept is not None
    assert timer.seconds < 0.1
