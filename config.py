"""Application settings loaded from the environment and `.env`."""

from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INSTRUCTIONS = (
    "You are FreeSeek, a helpful assistant. Answer in markdown. When you "
    "reason before answering, wrap the reasoning in <think></think> tags."
)


class DatabaseSettings(BaseModel):
    url: str = "sqlite+aiosqlite:///freeseek.db"
    echo: bool = False
    create_all: bool = True


class AuthSettings(BaseModel):
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    token_ttl: timedelta = timedelta(hours=3)
    password_iterations: int = 600_000


class CompletionSettings(BaseModel):
    """OpenAI-compatible completion endpoint (DeepSeek by default)."""

    base_url: str = "https://api.deepseek.com"
    api_key: str = ""
    model: str = "deepseek-chat"
    timeout: float = 120.0
    vision: bool = False
    instructions: str = DEFAULT_INSTRUCTIONS


class UploadSettings(BaseModel):
    directory: Path = Path("uploads")
    url_prefix: str = "/uploads"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FREESEEK_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth: AuthSettings
    completion: CompletionSettings = Field(default_factory=CompletionSettings)
    uploads: UploadSettings = Field(default_factory=UploadSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
