# survey/config.py
import os

from dotenv import load_dotenv

load_dotenv()

# --- Server side ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///judgments.db")
SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("SERVER_PORT", "8000"))

# --- Rater client ---
SURVEY_BASE_URL = os.getenv("SURVEY_BASE_URL", "http://localhost:8000").rstrip("/")
SURVEY_STATE_DIR = os.getenv("SURVEY_STATE_DIR", ".survey_state")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))

# --- Exposure / session ---
USAGE_THRESHOLD = int(os.getenv("USAGE_THRESHOLD", "3"))
SESSION_CAP = int(os.getenv("SESSION_CAP", "15"))
HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "1000"))

SCORE_MIN = int(os.getenv("SCORE_MIN", "1"))
SCORE_MAX = int(os.getenv("SCORE_MAX", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Durable local slots
PENDING_SLOT = "pendingJudgments"
PARTIAL_SLOT = "partialJudgments"
