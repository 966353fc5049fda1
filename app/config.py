from functools import lru_cache
from pathlib import Path
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Gemini settings
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.0-flash-lite"
    GEMINI_TIMEOUT_SECONDS: float = 60.0

    # Import API (back-office) settings
    IMPORT_API_URL: str | None = None
    IMPORT_API_KEY: str | None = None
    IMPORT_API_TIMEOUT_SECONDS: float = 30.0

    # Mailbox settings
    TARGET_EMAIL_ADDRESS: str | None = None
    MAILBOX_TIMEZONE: str = "Asia/Tokyo"
    SEARCH_LOOKBACK_DAYS: int = 1
    MAX_MESSAGES_PER_RUN: int = 200
    JOB_LABEL_NAME: str | None = None
    TALENT_LABEL_NAME: str | None = None

    # Gmail OAuth settings
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REFRESH_TOKEN: str | None = None

    # Redis settings (processed-mark store)
    REDIS_URL: str | None = None
    UPSTASH_REDIS_REST_URL: str | None = None
    UPSTASH_REDIS_REST_TOKEN: str | None = None

    # =================================================================
    # TRIAGE PIPELINE SETTINGS
    # =================================================================
    CLASSIFIER_STRATEGY: str = "keyword"  # keyword | model | hybrid
    KEYWORD_RULES_PATH: str | None = None
    FORWARD_TALENT_MAILS: bool = True
    API_CALL_DELAY_SECONDS: float = 1.0
    PROCESSED_MARK_TTL_SECONDS: int = 21600  # 6 hours
    PROCESSED_KEY_PREFIX: str = "processed_"
    JOB_INTERVAL_MINUTES: int = 5

    # Manual trigger endpoint
    TRIAGE_API_KEY: str | None = None

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def job_label_name(self) -> str:
        """Gmail label applied to imported job mail."""
        if self.JOB_LABEL_NAME:
            return self.JOB_LABEL_NAME
        return f"{self.TARGET_EMAIL_ADDRESS}/job"

    def talent_label_name(self) -> str:
        """Gmail label applied to forwarded talent mail."""
        if self.TALENT_LABEL_NAME:
            return self.TALENT_LABEL_NAME
        return f"{self.TARGET_EMAIL_ADDRESS}/talent"

    def redis_url(self) -> str | None:
        """
        Resolve the Redis connection URL.

        An explicit REDIS_URL wins; otherwise the Upstash REST host is turned
        into a native TLS URL, e.g. https://eu1-xxx.upstash.io ->
        rediss://default:<token>@eu1-xxx.upstash.io:6379
        """
        if self.REDIS_URL:
            return self.REDIS_URL
        if not self.UPSTASH_REDIS_REST_URL or not self.UPSTASH_REDIS_REST_TOKEN:
            return None

        rest_url = self.UPSTASH_REDIS_REST_URL.strip()
        host = urlparse(rest_url).hostname
        if not host:
            host = urlparse(f"https://{rest_url}").hostname
        if not host:
            raise ValueError("UPSTASH_REDIS_REST_URL does not include a valid hostname")

        return f"rediss://default:{self.UPSTASH_REDIS_REST_TOKEN}@{host}:6379"

    def missing_pipeline_settings(self) -> list[str]:
        """Names of settings the batch pipeline cannot run without."""
        required = {
            "GEMINI_API_KEY": self.GEMINI_API_KEY,
            "IMPORT_API_URL": self.IMPORT_API_URL,
            "IMPORT_API_KEY": self.IMPORT_API_KEY,
            "TARGET_EMAIL_ADDRESS": self.TARGET_EMAIL_ADDRESS,
            "GOOGLE_CLIENT_ID": self.GOOGLE_CLIENT_ID,
            "GOOGLE_CLIENT_SECRET": self.GOOGLE_CLIENT_SECRET,
            "GOOGLE_REFRESH_TOKEN": self.GOOGLE_REFRESH_TOKEN,
        }
        return [name for name, value in required.items() if not value]


@lru_cache
def get_settings() -> Settings:
    """Build settings once per process."""
    return Settings()


# =================================================================
# QUICK CONFIGURATION REFERENCE
# =================================================================
"""
Processed-mark retention (PROCESSED_MARK_TTL_SECONDS):

    6 hours (default)      21600
    1 day                  86400
    7 days                 604800

Classifier strategies (CLASSIFIER_STRATEGY):

    keyword   weighted keyword scoring only, no LLM spend before extraction
    model     LLM type detection for every message
    hybrid    keyword scoring, weak signals deferred to the LLM
"""
