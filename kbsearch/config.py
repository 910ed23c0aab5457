from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kbsearch.constants import (
    BATCH_CONCURRENCY,
    CANDIDATE_LIMIT,
    DEFAULT_LEXICAL_WEIGHT,
    DEFAULT_SEMANTIC_WEIGHT,
    LLM_TIMEOUT,
)
from kbsearch.llm.models import DEFAULTS, EMBEDDING_DEFAULTS
from kbsearch.search.types import Weights

KBSEARCH_DIR = Path.home() / ".kbsearch"


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KBSEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        populate_by_name=True,
    )

    # API keys come from the standard provider env vars
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")

    completion_model: str = "gpt-4o-mini"
    embedding_model: str | None = None
    semantic_strategy: Literal["llm", "embedding"] = "llm"

    db_path: Path = KBSEARCH_DIR / "search.db"

    lexical_weight: float = Field(default=DEFAULT_LEXICAL_WEIGHT, ge=0)
    semantic_weight: float = Field(default=DEFAULT_SEMANTIC_WEIGHT, ge=0)

    candidate_limit: int = Field(default=CANDIDATE_LIMIT, ge=1, le=500)
    batch_concurrency: int = Field(default=BATCH_CONCURRENCY, ge=1)
    llm_timeout: float = Field(default=LLM_TIMEOUT, gt=0)

    # JSON file of [{"keywords": [...], "category": "..."}] rules
    type_preferences: Path | None = None

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    @field_validator("completion_model")
    @classmethod
    def _validate_completion_model(cls, v: str) -> str:
        valid = {m.id for m in DEFAULTS}
        if v not in valid:
            raise ValueError(f"Unsupported model: {v}. Must be one of: {', '.join(sorted(valid))}")
        return v

    @field_validator("embedding_model")
    @classmethod
    def _validate_embedding_model(cls, v: str | None) -> str | None:
        if v is None:
            return v
        valid = {m.id for m in EMBEDDING_DEFAULTS}
        if v not in valid:
            raise ValueError(f"Unsupported embedding model: {v}. Must be one of: {', '.join(sorted(valid))}")
        return v

    @model_validator(mode="after")
    def _embedding_strategy_needs_model(self) -> "Config":
        if self.semantic_strategy == "embedding" and not self.embedding_model:
            raise ValueError("semantic_strategy 'embedding' requires embedding_model")
        return self

    @property
    def weights(self) -> Weights:
        return Weights(lexical=self.lexical_weight, semantic=self.semantic_weight)

    @property
    def db_dir(self) -> Path:
        return self.db_path.parent


def get_config() -> Config:
    return Config()
