"""
services/integrity_guard.py

시험 중 클라이언트 입력 이벤트(화면 전환, 우클릭, 단축키) 판정기.

세션이 시작될 때 acquire(), 종료될 때 release() 된다.
release 이후의 이벤트는 모두 허용(판정 없음)으로 처리한다.
탭 전환은 경고 오버레이(blocked)를 띄우고, acknowledge() 전까지 유지된다.
"""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Optional, Tuple

from pydantic import BaseModel, Field


class ClientEventType(str, Enum):
    VISIBILITY_HIDDEN = "visibility_hidden"
    VISIBILITY_VISIBLE = "visibility_visible"
    CONTEXT_MENU = "context_menu"
    KEYDOWN = "keydown"


class ClientEvent(BaseModel):
    """브라우저가 보고하는 입력 이벤트."""
    type: ClientEventType
    key: Optional[str] = Field(None, description="KeyboardEvent.key (keydown 전용)")
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    meta: bool = False


class GuardVerdict(BaseModel):
    """
    이벤트 판정 결과.

    Attributes:
        prevent_default: 클라이언트가 기본 동작을 막아야 하는지 여부.
        tab_switch:      탭 전환 위반으로 기록해야 하는지 여부.
        blocked:         판정 후 경고 오버레이 표시 여부.
        message:         사용자에게 보여줄 안내 문구.
    """
    prevent_default: bool = False
    tab_switch: bool = False
    blocked: bool = False
    message: Optional[str] = None


# (modifier 집합, 소문자 key). ctrl 과 meta(⌘)는 같은 취급
_BLOCKED_SHORTCUTS: FrozenSet[Tuple[FrozenSet[str], str]] = frozenset({
    (frozenset({"ctrl"}), "c"),
    (frozenset({"ctrl"}), "v"),
    (frozenset({"ctrl"}), "x"),
    (frozenset({"ctrl"}), "p"),
    (frozenset({"ctrl"}), "s"),
    (frozenset({"ctrl"}), "u"),
    (frozenset({"ctrl"}), "a"),
    (frozenset({"ctrl", "shift"}), "i"),
    (frozenset({"ctrl", "shift"}), "j"),
    (frozenset({"ctrl", "shift"}), "c"),
    (frozenset(), "f12"),
    (frozenset(), "printscreen"),
})

_MSG_TAB_SWITCH = "시험 중 탭 전환은 허용되지 않습니다. 이 기록은 저장되었습니다."
_MSG_CONTEXT_MENU = "시험 중에는 우클릭을 사용할 수 없습니다."
_MSG_SHORTCUT = "시험 중에는 이 단축키를 사용할 수 없습니다."


def _modifiers(event: ClientEvent) -> FrozenSet[str]:
    mods = set()
    if event.ctrl or event.meta:
        mods.add("ctrl")
    if event.shift:
        mods.add("shift")
    if event.alt:
        mods.add("alt")
    return frozenset(mods)


def is_blocked_shortcut(event: ClientEvent) -> bool:
    if not event.key:
        return False
    return (_modifiers(event), event.key.lower()) in _BLOCKED_SHORTCUTS


class IntegrityGuard:

    def __init__(self):
        self._active = False
        self.blocked = False

    @property
    def active(self) -> bool:
        return self._active

    def acquire(self) -> None:
        self._active = True

    def release(self) -> None:
        self._active = False
        self.blocked = False

    def acknowledge(self) -> None:
        """탭 전환 경고 확인, 오버레이 해제."""
        self.blocked = False

    def inspect(self, event: ClientEvent) -> GuardVerdict:
        if not self._active:
            return GuardVerdict()

        if event.type is ClientEventType.VISIBILITY_HIDDEN:
            self.blocked = True
            return GuardVerdict(tab_switch=True, blocked=True, message=_MSG_TAB_SWITCH)
        if event.type is ClientEventType.CONTEXT_MENU:
            return GuardVerdict(prevent_default=True, blocked=self.blocked, message=_MSG_CONTEXT_MENU)
        if event.type is ClientEventType.KEYDOWN and is_blocked_shortcut(event):
            return GuardVerdict(prevent_default=True, blocked=self.blocked, message=_MSG_SHORTCUT)
        return GuardVerdict(blocked=self.blocked)
