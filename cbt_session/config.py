import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# 경로 설정
LOG_FILE = os.getenv("CBT_LOG_FILE", os.path.join(BASE_DIR, "session.log"))

# 서버 설정
SUBMISSION_API_URL = os.getenv("CBT_SUBMISSION_API_URL", "http://127.0.0.1:8000/api/student")
CONTENT_API_URL = os.getenv("CBT_CONTENT_API_URL", "http://127.0.0.1:8000/api/admin")
REQUEST_TIMEOUT = float(os.getenv("CBT_REQUEST_TIMEOUT", "15.0"))

# 세션 타이밍 설정
START_SLOW_THRESHOLD_SECONDS = 15.0   # 시작 요청이 이 시간을 넘기면 "지연" 표시 (취소 아님)
EDITOR_DEBOUNCE_SECONDS = 2.0         # 마지막 편집 후 자동 저장까지 대기 시간
TICK_INTERVAL_SECONDS = 1.0
DEFAULT_SECTION_SECONDS = 1920        # 섹션별 제한 시간 기본값 (32분)
SUBMIT_FLUSH_ROUNDS = 2               # 최종 제출 전 미동기화 답안 재전송 횟수

# 문제 편집기 설정
NEW_QUESTION_DEFAULTS = {
    "questionText": "New Question",
    "choices": ["Option A", "Option B", "Option C", "Option D"],
    "correctAnswer": "Option A",
    "explanation": "",
    "difficulty": "Medium",
}
