import asyncio

from pydantic import BaseModel

from kbsearch.constants import LLM_TIMEOUT
from kbsearch.llm.base import CompletionClient
from kbsearch.llm.models import get_model
from kbsearch.logging import get_logger

_logger = get_logger(__name__)


class EmptyCompletionError(RuntimeError):
    pass


class TextCompletionProvider:
    """Single prompt-in, text-out entry point for every model-driven search step.

    Raises on transport errors, timeouts and empty replies; callers own the fallback.
    """

    def __init__(self, client: CompletionClient, model: str, timeout: float = LLM_TIMEOUT):
        self.client = client
        self.model = model
        self.timeout = timeout

    @property
    def max_output_tokens(self) -> int:
        return get_model(self.model).max_output_tokens

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_format: type[BaseModel] | None = None,
    ) -> str:
        async with asyncio.timeout(self.timeout):
            response = await self.client.completion(
                prompt=prompt,
                model=self.model,
                system=system,
                temperature=temperature,
                max_tokens=max_tokens,
                response_format=response_format,
            )

        if not response.text:
            raise EmptyCompletionError(f"{self.model} returned an empty completion")
        if response.truncated:
            # Partial JSON fails validation downstream and takes the fallback path
            _logger.warning("Completion from %s hit max_tokens=%s", self.model, max_tokens)
        return response.text

    async def close(self) -> None:
        await self.client.close()
