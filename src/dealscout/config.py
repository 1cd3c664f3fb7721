"""Runtime configuration, read from ``DEALSCOUT_*`` environment variables or ``.env``."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # inference
    backend: Literal["ollama", "openai", "echo"] = "ollama"
    model: str = "qwen3:0.6b"
    embedding_model: Optional[str] = None
    context_size: int = Field(default=2048, gt=0)
    ollama_host: Optional[str] = None
    openai_base_url: str = "http://localhost:8080/v1"
    openai_api_key: str = "not-needed"
    max_tokens: int = Field(default=512, gt=0)
    temperature: float = Field(default=0.7, ge=0.0)

    # agent
    max_steps: int = Field(default=3, ge=1)

    # memory
    memory_capacity: int = Field(default=100, gt=0)
    conversation_capacity: int = Field(default=20, gt=0)
    db_path: Optional[str] = None

    # scoring
    strong_pass_threshold: int = 80
    soft_pass_threshold: int = 60
    borderline_threshold: int = 40
    alert_threshold: int = 90
    auto_like_threshold: int = 85
    auto_dislike_threshold: int = 20

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="DEALSCOUT_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
