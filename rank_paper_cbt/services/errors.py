"""
services/errors.py

시험 세션 예외 계층.
HTTP 계층(api/routes.py)이 이 예외들을 HTTPException 상태 코드로 변환한다.
"""


class ExamSessionError(Exception):
    """세션 관련 예외의 기반 클래스."""


class GatewayError(ExamSessionError):
    """영속 저장소 읽기/쓰기 실패."""


class AttemptConflictError(GatewayError):
    """같은 (학생, 시험지) 응시 기록이 이미 존재함."""


class InitializationError(ExamSessionError):
    """응시 생성/재개 실패. 세션은 ACTIVE에 도달하지 않는다."""


class PaperNotFoundError(InitializationError):
    """시험지를 찾을 수 없음."""


class FinalizationError(ExamSessionError):
    """제출 쓰기가 재시도 후에도 실패. 세션은 FINALIZING에 머문다."""


class AttemptClosedError(ExamSessionError):
    """ACTIVE가 아닌 세션(또는 제출된 응시)에 대한 쓰기 요청."""


class InvalidTransitionError(ExamSessionError):
    """허용되지 않은 상태 전이 (예: 이미 시작된 세션을 다시 start)."""
