"""Pydantic settings loaded from .env."""
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator


class Settings(BaseSettings):
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-haiku-4-5-20251001"
    database_url: str = "./trialgate.db"
    host: str = "0.0.0.0"
    port: int = 3000
    jwt_secret: str = "change-me-to-a-random-32-char-secret"
    session_token_ttl_s: int = 7 * 24 * 3600
    session_idle_timeout_s: int = 3600
    # Relay retry policy
    relay_max_attempts: int = Field(3, ge=1)
    relay_base_delay_s: float = 1.0
    relay_attempt_timeout_s: float = 30.0
    relay_transient_statuses: list[int] = [500, 502, 503, 504, 529]
    relay_max_tokens: int = 300
    # Challenge catalogue and reveal
    challenges_path: str = ""
    reveal_image_url: str = "https://media.giphy.com/media/g5R9dok94mrIvplmZd/giphy.gif"
    friend_name: str = "friend"
    sender_name: str = "your partner in crime"
    reveal_step_delay_s: float = 1.0
    post_unlock_passthrough: bool = True
    # Rate limiting
    rate_limit_requests: int = 30
    rate_limit_window_s: int = 60

    @field_validator("database_url")
    @classmethod
    def strip_sqlite_scheme(cls, value: str) -> str:
        if value.startswith("sqlite:///"):
            return value[len("sqlite:///"):]
        return value

    @property
    def use_mock_relay(self) -> bool:
        return not self.anthropic_api_key.strip()

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
