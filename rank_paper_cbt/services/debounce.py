"""
services/debounce.py

키별 trailing-debounce 쓰기 도우미.

schedule(key, value) 를 연달아 호출하면 마지막 호출로부터 delay 초 동안
조용할 때 마지막 값 하나만 write(key, value) 로 내보낸다.
같은 키의 쓰기는 앞선 쓰기가 끝난 뒤에 시작되므로 순서가 뒤바뀌지 않는다.
flush() 는 대기 중인 타이머를 즉시 실행하고 진행 중인 쓰기까지 기다린다.

단일 이벤트 루프(asyncio) 위에서만 사용한다. 스레드 안전하지 않음.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Awaitable, Callable, Dict, Generic, Hashable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

WriteFn = Callable[[K, V], Awaitable[None]]
ResultFn = Callable[[K, V, Optional[BaseException]], None]


class DebouncedWriter(Generic[K, V]):
    """키마다 마지막 값만 delay 초 뒤에 저장하는 쓰기 도우미."""

    def __init__(
        self,
        write: WriteFn,
        delay: float,
        name: str = "writer",
        on_result: Optional[ResultFn] = None,
    ):
        self._write = write
        self._delay = delay
        self._name = name
        self._on_result = on_result
        self._pending: Dict[K, V] = {}
        self._handles: Dict[K, asyncio.TimerHandle] = {}
        self._tasks: Dict[K, asyncio.Task] = {}
        self._closed = False

    # ── 상태 ────────────────────────────────────────────────────────────────

    @property
    def is_busy(self) -> bool:
        """대기 중인 타이머 또는 진행 중인 쓰기가 있으면 True."""
        return bool(self._pending or self._tasks)

    def has_pending(self, key: K) -> bool:
        return key in self._pending

    # ── 스케줄링 ────────────────────────────────────────────────────────────

    def schedule(self, key: K, value: V) -> None:
        """key 의 쓰기를 delay 초 뒤로 (다시) 예약한다. 이전 대기 값은 버려진다."""
        if self._closed:
            raise RuntimeError(f"{self._name}: 닫힌 writer 에는 예약할 수 없습니다.")

        self._pending[key] = value
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(self._delay, self._fire, key)

    def _fire(self, key: K) -> None:
        self._handles.pop(key, None)
        if key in self._pending:
            self._start_write(key, self._pending.pop(key))

    def _start_write(self, key: K, value: V) -> asyncio.Task:
        previous = self._tasks.get(key)
        task = asyncio.ensure_future(self._write_after(previous, key, value))
        self._tasks[key] = task
        task.add_done_callback(functools.partial(self._forget, key))
        return task

    def _forget(self, key: K, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def _write_after(self, previous: Optional[asyncio.Task], key: K, value: V) -> bool:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await self._write(key, value)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"{self._name}: '{key}' 저장 실패: {e}")
            if self._on_result:
                self._on_result(key, value, e)
            return False
        if self._on_result:
            self._on_result(key, value, None)
        return True

    # ── 플러시 / 종료 ───────────────────────────────────────────────────────

    async def flush(self) -> bool:
        """
        대기 중인 쓰기를 즉시 시작하고, 진행 중인 쓰기를 포함해 모두 끝날 때까지 기다린다.

        Returns:
            마지막 쓰기가 모든 키에서 성공했으면 True.
        """
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

        pending, self._pending = self._pending, {}
        for key, value in pending.items():
            self._start_write(key, value)

        tasks: List[asyncio.Task] = list(self._tasks.values())
        if not tasks:
            return True
        results = await asyncio.gather(*tasks)
        return all(results)

    def close(self) -> None:
        """예약된 타이머와 진행 중인 쓰기를 모두 버리고 이후 예약을 거부한다."""
        if self._closed:
            return
        self._closed = True
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        dropped = len(self._pending)
        self._pending.clear()
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()
        if dropped:
            logger.info(f"{self._name}: 저장되지 않은 대기 쓰기 {dropped}건 폐기")
