from abc import ABC, abstractmethod

from pydantic import BaseModel

from kbsearch.constants import LLM_MAX_ATTEMPTS
from kbsearch.llm.retry import with_retry
from kbsearch.llm.types import CompletionResponse
from kbsearch.logging import get_logger

_logger = get_logger(__name__)


class CompletionClient(ABC):
    """Backend adapter: one prompt (plus optional system text) in, one reply out."""

    max_attempts: int = LLM_MAX_ATTEMPTS

    @abstractmethod
    async def _completion(
        self,
        prompt: str,
        model: str,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_format: type[BaseModel] | None = None,
    ) -> CompletionResponse: ...

    async def completion(self, **kwargs) -> CompletionResponse:
        response = await with_retry(self._completion, attempts=self.max_attempts, **kwargs)
        _logger.debug(
            "Completion from %s: %d tokens, finish=%s",
            response.model,
            response.usage.total_tokens,
            response.finish_reason,
        )
        return response

    @abstractmethod
    async def close(self) -> None: ...
