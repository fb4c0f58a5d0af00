import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
LOG_FILE = os.getenv("LOG_FILE", os.path.join(BASE_DIR, "launch.log"))

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "0.0.0.0")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
STUDENT_HEADER = "X-Student-Id"   # 외부 인증 계층이 주입하는 학생 식별 헤더
SESSION_TTL = int(os.getenv("SESSION_TTL", "3600"))           # 종료된 세션 보관 시간 (초)
SESSION_CLEANUP_INTERVAL = 300                                 # 레지스트리 정리 주기 (초)

# 자동 저장 설정
ANSWER_DEBOUNCE_MS = int(os.getenv("ANSWER_DEBOUNCE_MS", "300"))
VIOLATION_DEBOUNCE_MS = int(os.getenv("VIOLATION_DEBOUNCE_MS", "1000"))

# 타이머 설정
COUNTDOWN_TICK_SECONDS = float(os.getenv("COUNTDOWN_TICK_SECONDS", "1.0"))
TIME_WARNING_SECONDS = int(os.getenv("TIME_WARNING_SECONDS", "300"))   # 5분 미만이면 경고 표시

# 제출 재시도 설정
FINALIZE_MAX_RETRIES = int(os.getenv("FINALIZE_MAX_RETRIES", "3"))
FINALIZE_BACKOFF_BASE = float(os.getenv("FINALIZE_BACKOFF_BASE", "0.5"))
