import anthropic
import openai
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from kbsearch.constants import LLM_MAX_ATTEMPTS
from kbsearch.logging import get_logger

_logger = get_logger(__name__)

# Timeouts, conflicts and rate limits; any 5xx is retried as well
_RETRYABLE_STATUS_CODES = frozenset({408, 409, 429})

_STATUS_ERRORS = (openai.APIStatusError, anthropic.APIStatusError)
_CONNECTION_ERRORS = (openai.APIConnectionError, anthropic.APIConnectionError)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, _STATUS_ERRORS):
        return exc.status_code in _RETRYABLE_STATUS_CODES or exc.status_code >= 500
    return isinstance(exc, _CONNECTION_ERRORS)


def _log_retry(state: RetryCallState) -> None:
    _logger.warning(
        "Model call failed (attempt %d/%d), retrying: %s",
        state.attempt_number,
        state.retry_object.stop.max_attempt_number,
        state.outcome.exception(),
    )


async def with_retry(fn, *args, attempts: int = LLM_MAX_ATTEMPTS, **kwargs):
    retrying = AsyncRetrying(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential_jitter(initial=0.5, max=8, jitter=2),
        reraise=True,
        before_sleep=_log_retry,
    )
    return await retrying(fn, *args, **kwargs)
