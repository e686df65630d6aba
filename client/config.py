from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from config import CompletionSettings


class ClientSettings(BaseSettings):
    """Which backing store the client uses, chosen once at startup.

    `completion` is only read by the local store, which talks to the
    model directly instead of going through the server.
    """

    model_config = SettingsConfigDict(
        env_prefix="FREESEEK_CLIENT_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    backend: Literal["remote", "local"] = "remote"
    api_url: str = "http://localhost:3000"
    token: str | None = None
    local_path: Path = Path("freeseek-chats.json")
    completion: CompletionSettings = Field(default_factory=CompletionSettings)
