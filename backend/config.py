"""Centralized configuration — all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- Identity tokens ---
JWT_SECRET = os.getenv("JWT_SECRET", "dev-only-secret-change-me-0123456789abcdef")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = 10  # max messages per second per client
MAX_WS_MESSAGE_SIZE = 65536  # bytes, quizzes arrive inline with host:create_room

# --- Rooms ---
ROOM_CODE_LENGTH = int(os.getenv("ROOM_CODE_LENGTH", "4"))
MAX_ROOM_CODE_ATTEMPTS = 10
MAX_ROOMS = int(os.getenv("MAX_ROOMS", "50"))
MAX_PLAYERS_PER_ROOM = 100
MAX_NAME_LENGTH = 20
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", "1800"))
ROOM_CLEANUP_INTERVAL = 60  # seconds

# --- Game ---
DEFAULT_TIME_LIMIT = 20  # seconds, used when a question carries no timeLimitSec
QUESTION_END_GRACE_MS = 200
REJECT_LATE_ANSWERS = _env_flag("REJECT_LATE_ANSWERS")
END_ON_ALL_ANSWERED = _env_flag("END_ON_ALL_ANSWERED")
DELETE_ROOM_ON_GAME_OVER = _env_flag("DELETE_ROOM_ON_GAME_OVER")

# --- Quiz limits ---
MAX_QUESTIONS = 100
MAX_CHOICES = 10
MAX_QUESTION_TEXT_LENGTH = 2000
MAX_CHOICE_LENGTH = 500
MAX_TIME_LIMIT = 300

# --- Scoring ---
BASE_POINTS = 1000
SPEED_BONUS_MS_PER_POINT = 50

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
