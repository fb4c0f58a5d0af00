import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rank_paper_cbt.models.question_model import Option, Question, RankPaper
from rank_paper_cbt.models.session_state import SessionSettings
from rank_paper_cbt.services.errors import GatewayError
from rank_paper_cbt.services.gateway import InMemoryGateway


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingGateway(InMemoryGateway):
    """호출 기록 + 실패 주입이 가능한 인메모리 게이트웨이."""

    def __init__(self, clock):
        super().__init__(clock=clock)
        self.calls = []
        self.fail = {}
        self.stale_finds = 0

    def _enter(self, name, *args):
        self.calls.append((name,) + args)
        remaining = self.fail.get(name, 0)
        if remaining:
            self.fail[name] = remaining - 1
            raise GatewayError(f"{name} failed (injected)")

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]

    def submission_writes(self):
        return [c for c in self.calls_named("update_attempt") if "submitted_at" in c[2]]

    async def get_paper(self, paper_id):
        self._enter("get_paper", paper_id)
        return await super().get_paper(paper_id)

    async def find_attempt(self, student_id, paper_id):
        self._enter("find_attempt", student_id, paper_id)
        if self.stale_finds:
            self.stale_finds -= 1
            return None
        return await super().find_attempt(student_id, paper_id)

    async def create_attempt(self, student_id, paper_id, ends_at):
        self._enter("create_attempt", student_id, paper_id, ends_at)
        return await super().create_attempt(student_id, paper_id, ends_at)

    async def update_attempt(self, attempt_id, fields, only_if_open=False):
        self._enter("update_attempt", attempt_id, dict(fields), only_if_open)
        return await super().update_attempt(attempt_id, fields, only_if_open)

    async def upsert_answer(self, attempt_id, question_id, selection):
        self._enter("upsert_answer", attempt_id, question_id, selection)
        await super().upsert_answer(attempt_id, question_id, selection)

    async def upsert_upload(self, attempt_id, upload_type, document_ref):
        self._enter("upsert_upload", attempt_id, upload_type, document_ref)
        await super().upsert_upload(attempt_id, upload_type, document_ref)


def make_paper(paper_id="paper-1", minutes=30, questions=5):
    paper = RankPaper(
        id=paper_id,
        title="Rank Paper 01",
        time_limit_minutes=minutes,
        has_mcq=True,
        has_short_essay=True,
        has_essay=True,
    )
    qs = [
        Question(
            id=f"q{n}",
            q_no=n,
            question_text=f"Question {n}",
            options=[Option(id=f"q{n}-o{i}", option_no=i, option_text=f"opt {i}") for i in range(1, 5)],
        )
        for n in range(1, questions + 1)
    ]
    return paper, qs


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway(clock):
    gw = RecordingGateway(clock)
    paper, questions = make_paper()
    gw.add_paper(paper, questions)
    return gw


@pytest.fixture
def settings():
    return SessionSettings(
        answer_debounce=0.05,
        violation_debounce=0.05,
        tick_seconds=0.01,
        finalize_max_retries=3,
        finalize_backoff_base=0,
    )
