import pytest

from rank_paper_cbt.services.integrity_guard import (
    ClientEvent,
    ClientEventType,
    IntegrityGuard,
    is_blocked_shortcut,
)


@pytest.fixture
def guard():
    g = IntegrityGuard()
    g.acquire()
    return g


@pytest.mark.parametrize(
    "event",
    [
        ClientEvent(type=ClientEventType.KEYDOWN, key="c", ctrl=True),
        ClientEvent(type=ClientEventType.KEYDOWN, key="V", meta=True),
        ClientEvent(type=ClientEventType.KEYDOWN, key="p", ctrl=True),
        ClientEvent(type=ClientEventType.KEYDOWN, key="I", ctrl=True, shift=True),
        ClientEvent(type=ClientEventType.KEYDOWN, key="F12"),
        ClientEvent(type=ClientEventType.KEYDOWN, key="PrintScreen"),
    ],
)
def test_blocked_shortcuts_are_prevented(guard, event):
    assert is_blocked_shortcut(event)
    verdict = guard.inspect(event)
    assert verdict.prevent_default is True
    assert verdict.tab_switch is False


@pytest.mark.parametrize(
    "event",
    [
        ClientEvent(type=ClientEventType.KEYDOWN, key="c"),
        ClientEvent(type=ClientEventType.KEYDOWN, key="ArrowRight"),
        ClientEvent(type=ClientEventType.KEYDOWN, key="i", ctrl=True),
        ClientEvent(type=ClientEventType.VISIBILITY_VISIBLE),
    ],
)
def test_ordinary_input_is_allowed(guard, event):
    verdict = guard.inspect(event)
    assert verdict.prevent_default is False
    assert verdict.tab_switch is False


def test_hidden_page_is_tab_switch_and_blocks(guard):
    verdict = guard.inspect(ClientEvent(type=ClientEventType.VISIBILITY_HIDDEN))
    assert verdict.tab_switch is True
    assert verdict.blocked is True
    assert verdict.message

    # 확인 전에는 다른 이벤트에도 오버레이 유지
    assert guard.inspect(ClientEvent(type=ClientEventType.VISIBILITY_VISIBLE)).blocked is True
    guard.acknowledge()
    assert guard.blocked is False


def test_context_menu_is_prevented(guard):
    verdict = guard.inspect(ClientEvent(type=ClientEventType.CONTEXT_MENU))
    assert verdict.prevent_default is True
    assert verdict.message


def test_released_guard_allows_everything(guard):
    guard.inspect(ClientEvent(type=ClientEventType.VISIBILITY_HIDDEN))
    guard.release()
    assert guard.blocked is False
    verdict = guard.inspect(ClientEvent(type=ClientEventType.CONTEXT_MENU))
    assert verdict.prevent_default is False
    assert guard.inspect(ClientEvent(type=ClientEventType.VISIBILITY_HIDDEN)).tab_switch is False
