import asyncio

import pytest

from lightnode.cancel import ShutdownCancelled, with_cancel
from lightnode.shutdown import Controller


async def _forever(flag: dict):
    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        flag["cancelled"] = True
        raise


@pytest.mark.asyncio
async def test_future_with_cancel():
    controller = Controller()
    flag = {}
    task = asyncio.ensure_future(with_cancel(controller, _forever(flag)))
    await asyncio.sleep(0)
    controller.trigger_shutdown("oi")
    with pytest.raises(ShutdownCancelled) as info:
        await asyncio.wait_for(task, 1)
    assert info.value.reason == "oi"
    assert flag.get("cancelled") is True


@pytest.mark.asyncio
async def test_future_with_cancel_from_signal():
    controller = Controller()
    signal = controller.triggered_shutdown()
    flag = {}
    task = asyncio.ensure_future(with_cancel(signal, _forever(flag)))
    await asyncio.sleep(0)
    controller.trigger_shutdown("oi")
    with pytest.raises(ShutdownCancelled) as info:
        await asyncio.wait_for(task, 1)
    reason = info.value.reason
    assert reason == "oi"
    assert flag.get("cancelled") is True


@pytest.mark.asyncio
async def test_future_with_cancel_finishes_without_shutdown():
    controller = Controller()

    async def ready():
        return "born ready"

    result = await asyncio.wait_for(with_cancel(controller, ready()), 1)
    assert result == "born ready"


@pytest.mark.asyncio
async def test_future_with_cancel_completes_after_sleep():
    controller = Controller()

    async def later():
        await asyncio.sleep(0.01)
        return "I have heard the summons"

    result = await asyncio.wait_for(with_cancel(controller, later()), 1)
    assert result == "I have heard the summons"
    assert controller.is_shutdown_triggered() is False


@pytest.mark.asyncio
async def test_already_triggered_cancels_pending():
    controller = Controller()
    controller.trigger_shutdown("stop")
    with pytest.raises(ShutdownCancelled) as info:
        await asyncio.wait_for(with_cancel(controller, _forever({})), 1)
    assert info.value.reason == "stop"


@pytest.mark.asyncio
async def test_exception_from_awaitable_propagates():
    controller = Controller()

    async def boom():
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await asyncio.wait_for(with_cancel(controller, boom()), 1)