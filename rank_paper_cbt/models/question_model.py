from typing import Optional, List
from pydantic import BaseModel, Field, field_validator, model_validator


class Option(BaseModel):
    """MCQ 보기 하나."""
    id: str = Field(..., description="보기 고유 ID")
    option_no: int = Field(..., ge=1, description="보기 번호 (1-based, 정렬 기준)")
    option_text: Optional[str] = Field(None, description="보기 텍스트")
    option_image_url: Optional[str] = Field(None, description="보기 이미지 URL")


class Question(BaseModel):
    """
    랭크 페이퍼 MCQ 문제 모델 (읽기 전용 참조 데이터)
    Pydantic v2 적용
    """
    id: str = Field(
        ...,
        description="문제 고유 ID"
    )
    q_no: int = Field(
        ...,
        ge=1,
        description="문제 번호 (화면 표시 순서)"
    )
    question_text: Optional[str] = Field(
        None,
        description="발문 텍스트 (이미지 문제인 경우 None)"
    )
    question_image_url: Optional[str] = Field(
        None,
        description="발문 이미지 URL"
    )
    options: List[Option] = Field(
        ...,
        description="보기 리스트 (option_no 오름차순)"
    )

    @field_validator('options')
    @classmethod
    def sort_options(cls, v: List[Option]) -> List[Option]:
        """
        검증 로직 1: 보기는 최소 2개 이상, option_no 오름차순으로 정렬한다.
        """
        if len(v) < 2:
            raise ValueError("보기(options)는 최소 2개 이상의 항목이 필요합니다.")
        return sorted(v, key=lambda o: o.option_no)

    @model_validator(mode='after')
    def validate_content(self) -> 'Question':
        """
        검증 로직 2: 발문 텍스트와 이미지 중 하나는 반드시 있어야 한다.
        """
        if not self.question_text and not self.question_image_url:
            raise ValueError(f"문제 {self.q_no}: 발문 텍스트 또는 이미지가 필요합니다.")
        return self

    def has_option(self, option_no: int) -> bool:
        return any(o.option_no == option_no for o in self.options)


class RankPaper(BaseModel):
    """시험지 메타데이터. 세션 시작 시 한 번 조회한다."""
    id: str
    title: str = Field(..., min_length=1)
    time_limit_minutes: int = Field(..., gt=0, description="제한 시간 (분)")
    has_mcq: bool = True
    has_short_essay: bool = False
    has_essay: bool = False
    essay_pdf_url: Optional[str] = None
    short_essay_pdf_url: Optional[str] = None
