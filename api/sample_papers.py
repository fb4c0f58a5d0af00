"""
api/sample_papers.py — 개발 서버용 샘플 시험지
"""

from rank_paper_cbt.models.question_model import Option, Question, RankPaper

SAMPLE_PAPER = RankPaper(
    id="sample-rank-paper",
    title="Grade 11 Combined Maths: Rank Paper 01",
    time_limit_minutes=30,
    has_mcq=True,
    has_short_essay=True,
    has_essay=False,
)


def _options(qid: str, *texts: str) -> list:
    return [
        Option(id=f"{qid}-o{n}", option_no=n, option_text=text)
        for n, text in enumerate(texts, start=1)
    ]


SAMPLE_QUESTIONS = [
    Question(
        id="sample-q1",
        q_no=1,
        question_text="2x + 3 = 11 일 때 x 의 값은?",
        options=_options("sample-q1", "3", "4", "5", "7"),
    ),
    Question(
        id="sample-q2",
        q_no=2,
        question_text="다음 중 소수(prime)가 아닌 것은?",
        options=_options("sample-q2", "2", "13", "21", "29"),
    ),
    Question(
        id="sample-q3",
        q_no=3,
        question_text="sin²θ + cos²θ 의 값은?",
        options=_options("sample-q3", "0", "1", "2", "θ"),
    ),
]
