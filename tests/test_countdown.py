import asyncio
from datetime import timedelta

from rank_paper_cbt.services.countdown import CountdownController


def test_remaining_is_recomputed_from_deadline(clock):
    countdown = CountdownController(clock.now + timedelta(minutes=5), _noop, clock=clock)
    assert countdown.remaining_seconds() == 300
    clock.advance(seconds=90)
    assert countdown.remaining_seconds() == 210
    clock.advance(minutes=10)
    assert countdown.remaining_seconds() == 0


def test_expiry_fires_exactly_once(clock):
    fired = []

    async def on_expire():
        fired.append(clock.now)

    async def scenario():
        countdown = CountdownController(clock.now + timedelta(seconds=2), on_expire, clock=clock, tick_seconds=0.01)
        countdown.start()
        await asyncio.sleep(0.05)
        assert fired == []

        clock.advance(seconds=3)
        await asyncio.sleep(0.05)
        clock.advance(seconds=3)
        await asyncio.sleep(0.05)

        assert len(fired) == 1
        assert countdown.expired is True
        assert countdown.running is False

    asyncio.run(scenario())


def test_stopped_countdown_never_fires(clock):
    fired = []

    async def on_expire():
        fired.append(True)

    async def scenario():
        countdown = CountdownController(clock.now + timedelta(seconds=1), on_expire, clock=clock, tick_seconds=0.01)
        countdown.start()
        countdown.stop()
        clock.advance(seconds=5)
        await asyncio.sleep(0.05)
        assert fired == []
        assert countdown.expired is False

    asyncio.run(scenario())


async def _noop():
    return None
