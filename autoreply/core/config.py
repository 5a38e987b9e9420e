from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    AUTO_REPLY_ENABLED: bool = True

    BOT_WEBHOOK_SECRET: str = ""

    EVOLUTION_API_URL: str = "http://localhost:8080"
    EVOLUTION_API_KEY: str | None = None
    EVOLUTION_INSTANCE: str = "default"
    EVOLUTION_FETCH_TIMEOUT_MS: int = 8000
    EVOLUTION_MAX_ATTEMPTS: int = 2
    EVOLUTION_RETRY_DELAY_MS: int = 350

    # Reply pacing
    BOT_COOLDOWN_MS: int = 1000
    BOT_FALLBACK_COOLDOWN_MS: int = 5 * 60 * 1000
    BOT_HUMANIZER_MIN_MS: int = 2500
    BOT_HUMANIZER_MAX_MS: int = 4000
    BOT_BURST_COUNT: int = 3
    BOT_BURST_WINDOW_MS: int = 3000
    BOT_BURST_EXTRA_MIN_MS: int = 2000
    BOT_BURST_EXTRA_MAX_MS: int = 4000
    BOT_DELAY_BASE_MIN_MS: int = 800
    BOT_DELAY_BASE_MAX_MS: int = 2500
    BOT_DELAY_PER_CHAR_MIN_MS: int = 20
    BOT_DELAY_PER_CHAR_MAX_MS: int = 60
    BOT_DELAY_CAP_MS: int = 8000
    BOT_PRESENCE_CAP_MS: int = 5000
    BOT_ACK_REPLY_PROBABILITY: float = 0.35
    BOT_SPLIT_REPLIES: bool = False
    BOT_SPLIT_REPLIES_PROB: float = 0.25

    # Comma separated phone numbers (digits only)
    BOT_TEST_NUMBERS: str = ""
    BOT_PRIVATE_NUMBERS: str = ""

    CATALOG_JSON_URL: str | None = None
    CATALOG_CACHE_TTL_MS: int = 5 * 60 * 1000
    CATALOG_FETCH_TIMEOUT_MS: int = 4000

    INTELLIGENCE_PATH: str = "./data/intelligence.json"
    INTELLIGENCE_CACHE_TTL_MS: int = 15_000

    # "json" keeps state, dedup ids and rules on disk; "memory" is for throwaway runs
    STORE_BACKEND: str = "json"
    STORE_DATA_DIR: str = "./data/conversations"

    BACKGROUND_JOBS_ENABLED: bool = True
    BOT_FOLLOWUP_MS: int = 48 * 60 * 60 * 1000
    FOLLOWUP_INTERVAL_SECONDS: int = 60 * 60
    DEDUP_RETENTION_DAYS: int = 7
    DEDUP_PURGE_INTERVAL_SECONDS: int = 24 * 60 * 60

    @property
    def test_numbers(self) -> list[str]:
        return _split_csv(self.BOT_TEST_NUMBERS)

    @property
    def private_numbers(self) -> list[str]:
        return _split_csv(self.BOT_PRIVATE_NUMBERS)

    @property
    def is_dev(self) -> bool:
        return self.ENV.lower() in {"dev", "local"}

    @property
    def uses_memory_store(self) -> bool:
        return self.STORE_BACKEND.strip().lower() == "memory"


settings = Settings()
