import math
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


SUPABASE_URL: str | None = os.environ.get("SUPABASE_URL")
# Use service role key for backend operations (bypasses RLS)
# Falls back to SUPABASE_KEY for compatibility
SUPABASE_KEY: str | None = os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or os.environ.get("SUPABASE_KEY")
FACES_TABLE: str = os.getenv("FACES_TABLE", "faces")
# "supabase" for the hosted table, "memory" for a process-local store.
FACE_STORE: str = os.getenv("FACE_STORE", "supabase").strip().lower()

# face_recognition's own default tolerance.
MATCH_THRESHOLD: float = float(os.getenv("MATCH_THRESHOLD", "0.6"))
MATCH_STRATEGY: str = os.getenv("MATCH_STRATEGY", "first").strip().lower()
FACE_DETECTION_MODEL: str = os.getenv("FACE_DETECTION_MODEL", "hog").strip().lower()
EMBEDDING_SIZE: int = 128

REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))

CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
CAMERA_WARMUP_SECONDS: float = float(os.getenv("CAMERA_WARMUP_SECONDS", "1.0"))
CAMERA_WIDTH: int = int(os.getenv("CAMERA_WIDTH", "640"))
CAMERA_HEIGHT: int = int(os.getenv("CAMERA_HEIGHT", "480"))

PRELOAD_MODELS: bool = _env_bool("PRELOAD_MODELS", True)
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

MATCH_STRATEGIES = ("first", "closest")
FACE_STORES = ("supabase", "memory")
DETECTION_MODELS = ("hog", "cnn")


def validate_config(require_supabase: bool = True) -> None:
    """Called at startup. Raises ValueError if a setting is unusable."""
    if not math.isfinite(MATCH_THRESHOLD) or MATCH_THRESHOLD < 0:
        raise ValueError("MATCH_THRESHOLD must be a finite non-negative number")
    if MATCH_STRATEGY not in MATCH_STRATEGIES:
        raise ValueError(f"MATCH_STRATEGY must be one of {', '.join(MATCH_STRATEGIES)}")
    if FACE_STORE not in FACE_STORES:
        raise ValueError(f"FACE_STORE must be one of {', '.join(FACE_STORES)}")
    if FACE_DETECTION_MODEL not in DETECTION_MODELS:
        raise ValueError(f"FACE_DETECTION_MODEL must be one of {', '.join(DETECTION_MODELS)}")
    if not math.isfinite(REQUEST_TIMEOUT_SECONDS) or REQUEST_TIMEOUT_SECONDS <= 0:
        raise ValueError("REQUEST_TIMEOUT_SECONDS must be a finite positive number")
    if not math.isfinite(CAMERA_WARMUP_SECONDS) or CAMERA_WARMUP_SECONDS < 0:
        raise ValueError("CAMERA_WARMUP_SECONDS must be a finite non-negative number")
    if require_supabase and FACE_STORE == "supabase" and (not SUPABASE_URL or not SUPABASE_KEY):
        raise ValueError(
            "Supabase is not configured. Set SUPABASE_URL and SUPABASE_KEY in server/.env "
            "or use FACE_STORE=memory."
        )
