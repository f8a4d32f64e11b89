import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseModel):
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    problem_batch_size: int = int(os.getenv("PROBLEM_BATCH_SIZE", "10"))
    default_difficulty: int = int(os.getenv("DEFAULT_DIFFICULTY", "3"))
    default_grade_level: int = int(os.getenv("DEFAULT_GRADE_LEVEL", "4"))
    generation_timeout_seconds: float = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "20"))
    top_up_threshold: int = int(os.getenv("TOP_UP_THRESHOLD", "3"))
    tick_interval_seconds: float = float(os.getenv("TICK_INTERVAL_SECONDS", "1.0"))
    session_log_dir: str | None = os.getenv("SESSION_LOG_DIR")
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "8000"))

settings = Settings()
