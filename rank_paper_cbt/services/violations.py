"""
services/violations.py

탭 전환 / 창 재진입 카운터 기록기.

카운터를 메모리에서 올리고, 증분이 아닌 현재 합계를 디바운스해서 저장한다.
쓰기가 유실되거나 순서가 바뀌어도 다음 쓰기가 합계를 바로잡는다.
카운터는 감사용 데이터이며 세션을 막거나 끝내지 않는다.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from rank_paper_cbt.services.debounce import DebouncedWriter
from rank_paper_cbt.services.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

_COUNTERS_KEY = "counters"


class ViolationRecorder:
    """탭 전환/창 재진입 합계를 메모리에 유지하고 디바운스 저장한다."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        attempt_id: str,
        delay: float,
        tab_switch_count: int = 0,
        window_close_count: int = 0,
    ):
        self._gateway = gateway
        self._attempt_id = attempt_id
        self.tab_switch_count = tab_switch_count
        self.window_close_count = window_close_count
        self._dirty = False
        self._writer: DebouncedWriter[str, Dict[str, int]] = DebouncedWriter(
            self._write_totals, delay, name="violation-recorder", on_result=self._on_result
        )

    @property
    def total(self) -> int:
        return self.tab_switch_count + self.window_close_count

    @property
    def is_saving(self) -> bool:
        return self._writer.is_busy

    def _totals(self) -> Dict[str, int]:
        return {
            "tab_switch_count": self.tab_switch_count,
            "window_close_count": self.window_close_count,
        }

    def record_tab_switch(self) -> int:
        self.tab_switch_count += 1
        logger.info(f"[{self._attempt_id}] 탭 전환 감지 (누적 {self.tab_switch_count})")
        self._writer.schedule(_COUNTERS_KEY, self._totals())
        return self.tab_switch_count

    def record_window_reopen(self) -> int:
        self.window_close_count += 1
        logger.info(f"[{self._attempt_id}] 창 재진입 감지 (누적 {self.window_close_count})")
        self._writer.schedule(_COUNTERS_KEY, self._totals())
        return self.window_close_count

    async def flush(self) -> bool:
        if self._dirty and not self._writer.has_pending(_COUNTERS_KEY):
            self._writer.schedule(_COUNTERS_KEY, self._totals())
        return await self._writer.flush()

    def close(self) -> None:
        self._writer.close()

    async def _write_totals(self, _key: str, totals: Dict[str, int]) -> None:
        await self._gateway.update_attempt(self._attempt_id, totals)

    def _on_result(self, _key: str, _totals, error: Optional[BaseException]) -> None:
        self._dirty = error is not None
