import asyncio

import pytest

from rank_paper_cbt.services.debounce import DebouncedWriter


class WriteLog:
    def __init__(self, fail_times=0, delay=0.0):
        self.writes = []
        self.fail_times = fail_times
        self.delay = delay

    async def __call__(self, key, value):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times:
            self.fail_times -= 1
            raise ConnectionError("store unavailable")
        self.writes.append((key, value))


def test_trailing_debounce_coalesces_per_key():
    async def scenario():
        log = WriteLog()
        writer = DebouncedWriter(log, delay=0.05)
        writer.schedule("q1", 1)
        writer.schedule("q1", 2)
        writer.schedule("q2", 4)
        writer.schedule("q1", 3)
        await asyncio.sleep(0.2)
        assert sorted(log.writes) == [("q1", 3), ("q2", 4)]
        assert writer.is_busy is False

    asyncio.run(scenario())


def test_quiet_period_restarts_on_each_call():
    async def scenario():
        log = WriteLog()
        writer = DebouncedWriter(log, delay=0.1)
        writer.schedule("q1", 1)
        await asyncio.sleep(0.06)
        writer.schedule("q1", 2)
        await asyncio.sleep(0.06)
        assert log.writes == []
        await asyncio.sleep(0.15)
        assert log.writes == [("q1", 2)]

    asyncio.run(scenario())


def test_flush_writes_pending_immediately():
    async def scenario():
        log = WriteLog()
        writer = DebouncedWriter(log, delay=60)
        writer.schedule("q1", 1)
        writer.schedule("q2", 2)
        assert await writer.flush() is True
        assert sorted(log.writes) == [("q1", 1), ("q2", 2)]
        assert writer.is_busy is False

    asyncio.run(scenario())


def test_flush_waits_for_in_flight_write_and_keeps_order():
    async def scenario():
        log = WriteLog(delay=0.05)
        writer = DebouncedWriter(log, delay=0)
        writer.schedule("q1", 1)
        await asyncio.sleep(0.01)   # 첫 쓰기가 진행 중
        writer.schedule("q1", 2)
        await writer.flush()
        assert log.writes == [("q1", 1), ("q1", 2)]

    asyncio.run(scenario())


def test_failure_is_reported_and_flush_returns_false():
    async def scenario():
        results = []
        log = WriteLog(fail_times=1)
        writer = DebouncedWriter(log, delay=60, on_result=lambda k, v, e: results.append((k, v, e is None)))
        writer.schedule("q1", 1)
        assert await writer.flush() is False
        writer.schedule("q1", 1)
        assert await writer.flush() is True
        assert results == [("q1", 1, False), ("q1", 1, True)]
        assert log.writes == [("q1", 1)]

    asyncio.run(scenario())


def test_close_drops_pending_and_rejects_new_work():
    async def scenario():
        log = WriteLog()
        writer = DebouncedWriter(log, delay=0.02)
        writer.schedule("q1", 1)
        writer.close()
        await asyncio.sleep(0.1)
        assert log.writes == []
        with pytest.raises(RuntimeError):
            writer.schedule("q1", 2)

    asyncio.run(scenario())
