import json

import anthropic
from pydantic import BaseModel

from kbsearch.llm.base import CompletionClient
from kbsearch.llm.models import get_model
from kbsearch.llm.types import CompletionResponse, Usage

# Normalized to the OpenAI vocabulary so callers check one set of reasons
_STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "stop",
    "max_tokens": "length",
}

# Structured replies are forced through a single tool whose input is the payload
_OUTPUT_TOOL = "_structured_output"


class AnthropicClient(CompletionClient):
    def __init__(self, api_key: str | None = None):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def _completion(
        self,
        prompt: str,
        model: str,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_format: type[BaseModel] | None = None,
    ) -> CompletionResponse:
        request: dict = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens or get_model(model).max_output_tokens,
        }
        if system:
            request["system"] = system
        if temperature is not None:
            request["temperature"] = temperature
        if response_format is not None:
            request["tools"] = [
                {
                    "name": _OUTPUT_TOOL,
                    "description": f"Return the answer as {response_format.__name__}",
                    "input_schema": response_format.model_json_schema(),
                }
            ]
            request["tool_choice"] = {"type": "tool", "name": _OUTPUT_TOOL}

        response = await self._client.messages.create(**request)

        return CompletionResponse(
            text=self._reply_text(response.content),
            model=model,
            finish_reason=_STOP_REASONS.get(response.stop_reason, response.stop_reason),
            usage=Usage(response.usage.input_tokens, response.usage.output_tokens),
        )

    async def close(self) -> None:
        await self._client.close()

    @staticmethod
    def _reply_text(blocks) -> str | None:
        parts = []
        for block in blocks:
            if block.type == "text":
                parts.append(block.text)
            elif block.type == "tool_use" and block.name == _OUTPUT_TOOL:
                parts.append(json.dumps(block.input))
        return "\n".join(parts) or None
