import os
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

def get_env_var(name: str) -> str:
    """Get environment variable or raise a clear error if missing."""
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"❌ Missing required environment variable: {name}\n"
            f"👉 Did you copy .env.example to .env and fill in your keys?"
        )
    return value

def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))

# Optional vars (with defaults)
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
PORT = int(os.getenv("PORT", "8000"))

# Persistence: in-memory ledger when unset
DATABASE_URL = os.getenv("DATABASE_URL")

# Classification agent (key is only required once the agent is built)
GEMINI_MODEL_NAME = os.getenv("GEMINI_MODEL_NAME", "gemini-2.0-flash")
CLASSIFIER_RETRIES = int(os.getenv("CLASSIFIER_RETRIES", "2"))
CLASSIFIER_RETRY_DELAY = _float_env("CLASSIFIER_RETRY_DELAY", 1.0)
CLASSIFIER_TIMEOUT = _float_env("CLASSIFIER_TIMEOUT", 30.0)

# Speech capture
SPEECH_START_TIMEOUT = _float_env("SPEECH_START_TIMEOUT", 8.0)
SPEECH_BLOCKED_WINDOW = _float_env("SPEECH_BLOCKED_WINDOW", 0.5)

# Review session
SUCCESS_CLOSE_DELAY = _float_env("SUCCESS_CLOSE_DELAY", 1.0)
# Review sessions untouched for this long are discarded by the API
SESSION_IDLE_TIMEOUT = _float_env("SESSION_IDLE_TIMEOUT", 900.0)
DEFAULT_CATEGORY = os.getenv("DEFAULT_CATEGORY", "Geral")
