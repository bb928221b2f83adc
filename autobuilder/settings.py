import os
import logging
from typing import Dict
from pydantic_settings import BaseSettings

ENV_PATH = os.path.join(os.path.dirname(__file__), ".env")

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    # GitHub
    GITHUB_TOKEN: str = ""
    GITHUB_API_BASE: str = "https://api.github.com"
    DEFAULT_BRANCH: str = "main"
    DELETE_ORPHAN_REPOS: bool = True
    GIT_USER_NAME: str = "Auto Builder"
    GIT_USER_EMAIL: str = "autobuilder@example.com"

    # Generation backend (empty key = offline fallback)
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_MAX_TOKENS: int = 1500

    # Shared secrets
    DEFAULT_SECRET: str = "demo-secret"
    STUDENT_SECRETS: Dict[str, str] = {}

    # Callback delivery
    NOTIFY_ATTEMPTS: int = 5
    NOTIFY_INITIAL_DELAY: float = 1.0
    NOTIFY_TIMEOUT: float = 10.0

    # Jobs
    MAX_CONCURRENT_JOBS: int = 4
    JOB_HISTORY_SIZE: int = 100
    SHUTDOWN_GRACE_SECONDS: float = 30.0

    # Server / logging
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"
    LOG_FILE_PATH: str = ""

    class Config:
        env_file = ENV_PATH  # <- always read autobuilder/.env

def log_startup_warnings(settings: Settings) -> None:
    if not settings.GITHUB_TOKEN:
        logger.warning("GITHUB_TOKEN not set. Repo creation will fail.")
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set. Generation will use the offline fallback.")

settings = Settings()
