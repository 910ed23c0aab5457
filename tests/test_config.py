from pathlib import Path

import pytest
from pydantic import ValidationError

from kbsearch.config import Config
from kbsearch.search.types import Weights


class TestConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("KBSEARCH_COMPLETION_MODEL", raising=False)
        config = Config(_env_file=None)

        assert config.completion_model == "gpt-4o-mini"
        assert config.semantic_strategy == "llm"
        assert config.weights == Weights(0.6, 0.4)
        assert config.candidate_limit == 100

    def test_env_prefix(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("KBSEARCH_DB_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("KBSEARCH_LEXICAL_WEIGHT", "0.8")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

        config = Config(_env_file=None)

        assert config.db_path == tmp_path / "x.db"
        assert config.db_dir == tmp_path
        assert config.lexical_weight == 0.8
        assert config.openai_api_key == "sk-env"

    def test_unknown_model_rejected(self):
        with pytest.raises(ValidationError):
            Config(_env_file=None, completion_model="gpt-0")

    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError):
            Config(_env_file=None, semantic_weight=-0.1)

    def test_candidate_limit_bounds(self):
        with pytest.raises(ValidationError):
            Config(_env_file=None, candidate_limit=501)

    def test_embedding_strategy_needs_model(self):
        with pytest.raises(ValidationError):
            Config(_env_file=None, semantic_strategy="embedding")

        config = Config(_env_file=None, semantic_strategy="embedding", embedding_model="text-embedding-3-small")
        assert config.embedding_model == "text-embedding-3-small"
