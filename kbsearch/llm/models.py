from dataclasses import dataclass
from enum import Enum


class Provider(Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    # OpenAI-compatible endpoints with their own base URL and key
    CUSTOM = "custom"


@dataclass(frozen=True)
class Model:
    id: str
    provider: Provider
    max_output_tokens: int = 8192
    base_url: str | None = None
    api_key_env: str | None = None


DEFAULTS = [
    Model("claude-sonnet-4-6", provider=Provider.ANTHROPIC),
    Model("claude-haiku-4-5", provider=Provider.ANTHROPIC),
    Model("gpt-5.2", provider=Provider.OPENAI, max_output_tokens=16384),
    Model("gpt-4o-mini", provider=Provider.OPENAI, max_output_tokens=16384),
    Model(
        "deepseek-chat",
        provider=Provider.CUSTOM,
        base_url="https://api.deepseek.com/v1",
        api_key_env="DEEPSEEK_API_KEY",
    ),
    Model(
        "moonshot-v1-8k",
        provider=Provider.CUSTOM,
        max_output_tokens=4096,
        base_url="https://api.moonshot.cn/v1",
        api_key_env="MOONSHOT_API_KEY",
    ),
    Model(
        "qwen-turbo",
        provider=Provider.CUSTOM,
        base_url="https://dashscope.aliyuncs.com/compatible-mode/v1",
        api_key_env="DASHSCOPE_API_KEY",
    ),
]


@dataclass(frozen=True)
class EmbeddingModel:
    id: str
    dim: int


# Served through litellm, any provider prefix litellm understands
EMBEDDING_DEFAULTS = [
    EmbeddingModel("text-embedding-3-small", 1536),
    EmbeddingModel("text-embedding-3-large", 3072),
    EmbeddingModel("text-embedding-ada-002", 1536),
]

_models: dict[str, Model] = {m.id: m for m in DEFAULTS}
_embedding_models: dict[str, EmbeddingModel] = {m.id: m for m in EMBEDDING_DEFAULTS}


def get_model(model_id: str) -> Model:
    if model_id not in _models:
        raise ValueError(f"Unknown model: {model_id}")
    return _models[model_id]


def get_embedding_model(model_id: str) -> EmbeddingModel:
    if model_id not in _embedding_models:
        raise ValueError(f"Unknown embedding model: {model_id}")
    return _embedding_models[model_id]
