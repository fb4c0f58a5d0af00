"""
services/countdown.py

서버 마감 시각(ends_at) 기반 카운트다운.

남은 시간은 매번 ends_at − now 로 다시 계산한다 (저장된 "남은 초"를 깎지 않음).
틱마다 남은 시간이 0 이하이면 만료 콜백을 정확히 한 번 호출하고 멈춘다.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CountdownController:
    """ends_at 기준 남은 시간을 계산하고 만료 시 콜백을 한 번 호출한다."""

    def __init__(
        self,
        ends_at: datetime,
        on_expire: Callable[[], Awaitable[None]],
        clock: Clock = utcnow,
        tick_seconds: float = 1.0,
    ):
        self._ends_at = ends_at
        self._on_expire = on_expire
        self._clock = clock
        self._tick = tick_seconds
        self._task: Optional[asyncio.Task] = None
        self._fired = False
        self._stopped = False

    @property
    def expired(self) -> bool:
        return self._fired

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def remaining_seconds(self) -> int:
        return max(0, int((self._ends_at - self._clock()).total_seconds()))

    def start(self) -> None:
        if self._stopped:
            raise RuntimeError("정지된 카운트다운은 다시 시작할 수 없습니다.")
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())

    def stop(self) -> None:
        """틱을 멈춘다. 이후에는 만료 콜백이 호출되지 않는다."""
        self._stopped = True
        if self._task is not None and not self._task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            # 만료 콜백 안에서 stop() 이 불리면 자기 자신을 취소하지 않는다
            if self._task is not current:
                self._task.cancel()

    async def _run(self) -> None:
        while not self._stopped:
            if self.remaining_seconds() <= 0:
                self._fired = True
                logger.info(f"카운트다운 만료 (ends_at={self._ends_at.isoformat()})")
                await self._on_expire()
                return
            await asyncio.sleep(self._tick)
