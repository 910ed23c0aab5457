import openai
from pydantic import BaseModel

from kbsearch.llm.base import CompletionClient
from kbsearch.llm.types import CompletionResponse, Usage


def _json_schema_format(model_class: type[BaseModel]) -> dict:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": model_class.__name__,
            "schema": model_class.model_json_schema(),
            "strict": False,
        },
    }


class OpenAIClient(CompletionClient):
    """Chat Completions backend; also serves OpenAI-compatible endpoints via `base_url`.

    Endpoints without `json_schema` support get plain JSON mode; the prompt
    then carries the expected shape.
    """

    def __init__(self, base_url: str | None = None, api_key: str | None = None, json_schema: bool = True):
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.json_schema = json_schema

    async def _completion(
        self,
        prompt: str,
        model: str,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_format: type[BaseModel] | None = None,
    ) -> CompletionResponse:
        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})

        request: dict = {"model": model, "messages": messages}
        if temperature is not None:
            request["temperature"] = temperature
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        if response_format is not None:
            if self.json_schema:
                request["response_format"] = _json_schema_format(response_format)
            else:
                request["response_format"] = {"type": "json_object"}

        response = await self._client.chat.completions.create(**request)

        choice = response.choices[0]
        usage = Usage()
        if response.usage:
            usage = Usage(response.usage.prompt_tokens, response.usage.completion_tokens)
        return CompletionResponse(
            text=choice.message.content,
            model=model,
            finish_reason=choice.finish_reason,
            usage=usage,
        )

    async def close(self) -> None:
        await self._client.close()
