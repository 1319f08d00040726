from enum import Enum

class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


DEFAULTS = {
"max_attempts": "3",
"poll_interval_ms": "5000",
"max_backoff_ms": "60000",
"backoff_multiplier": "1.5",
"status_interval_seconds": "60",
}

MIN_POLL_INTERVAL_MS = 1000
MAX_ERROR_LENGTH = 4000

APP_DIRNAME = ".procqueue"
DB_FILENAME = "queue.db"

DB_ENV = "PROCQUEUE_DB"
POLL_INTERVAL_ENV = "QUEUE_POLL_INTERVAL"
