import os

from kbsearch.llm.anthropic import AnthropicClient
from kbsearch.llm.base import CompletionClient
from kbsearch.llm.models import Provider, get_model
from kbsearch.llm.openai import OpenAIClient


def create_completion_client(config) -> CompletionClient:
    """Build the client for the configured completion model's backend."""
    model = get_model(config.completion_model)
    match model.provider:
        case Provider.ANTHROPIC:
            return AnthropicClient(api_key=config.anthropic_api_key)
        case Provider.OPENAI:
            return OpenAIClient(api_key=config.openai_api_key)
        case Provider.CUSTOM:
            api_key = os.environ.get(model.api_key_env) if model.api_key_env else None
            return OpenAIClient(base_url=model.base_url, api_key=api_key, json_schema=False)
        case _:
            raise ValueError(f"Unknown provider: {model.provider}")
