import asyncio
import signal

import pytest

from ai_coding_cli.main import TurnInterrupts


@pytest.mark.asyncio
async def test_first_interrupt_sets_cancel_event_second_cancels_task():
    interrupts = TurnInterrupts()
    cancel_event = interrupts.reset()
    task = asyncio.create_task(asyncio.sleep(10))

    with interrupts.guarding(task):
        interrupts.on_interrupt()
        assert cancel_event.is_set()
        assert not task.cancelled()

        interrupts.on_interrupt()
        await asyncio.wait({task})

    assert task.cancelled()


@pytest.mark.asyncio
async def test_reset_gives_a_fresh_event_per_turn():
    interrupts = TurnInterrupts()
    first = interrupts.reset()
    interrupts.on_interrupt()

    second = interrupts.reset()

    assert first.is_set()
    assert not second.is_set()


@pytest.mark.asyncio
async def test_prompts_get_default_ctrl_c_while_turn_is_guarded():
    interrupts = TurnInterrupts()
    interrupts.reset()
    task = asyncio.create_task(asyncio.sleep(0))

    with interrupts.guarding(task):
        assert interrupts.installed is True
        with interrupts.suspended():
            assert interrupts.installed is False
            assert signal.getsignal(signal.SIGINT) is signal.default_int_handler
        assert interrupts.installed is True

    assert interrupts.installed is False
    await task
