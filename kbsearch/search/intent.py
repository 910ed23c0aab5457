from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, field_validator

from kbsearch.constants import INTENT_MAX_TOKENS, INTENT_SUGGESTION_LIMIT, INTENT_TEMPERATURE
from kbsearch.llm.provider import TextCompletionProvider
from kbsearch.logging import get_logger
from kbsearch.parsing import parse_or_default
from kbsearch.search.file_types import extensions_for, normalize_category
from kbsearch.search.prompts import INTENT_PROMPT, SEARCH_SYSTEM_PROMPT
from kbsearch.search.types import CandidateFilter, IntentAction, QueryIntent, Timeframe

_logger = get_logger(__name__)

_ACTION_ALIASES = {
    "查找": IntentAction.FIND,
    "search": IntentAction.FIND,
    "lookup": IntentAction.FIND,
    "总结": IntentAction.SUMMARIZE,
    "summary": IntentAction.SUMMARIZE,
    "比较": IntentAction.COMPARE,
    "comparison": IntentAction.COMPARE,
    "解释": IntentAction.EXPLAIN,
    "explanation": IntentAction.EXPLAIN,
}

_TIMEFRAME_ALIASES = {
    "今天": Timeframe.TODAY,
    "本周": Timeframe.THIS_WEEK,
    "本月": Timeframe.THIS_MONTH,
    "今年": Timeframe.THIS_YEAR,
    "this week": Timeframe.THIS_WEEK,
    "this month": Timeframe.THIS_MONTH,
    "this year": Timeframe.THIS_YEAR,
}


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and v.strip().lower() in ("", "null", "none"):
        return None
    return v


class IntentPayload(BaseModel):
    """Model reply for intent analysis. Lenient: unknown labels degrade, they don't fail."""

    action: str | None = None
    keywords: list[str] = []
    entity: str | None = None
    timeframe: str | None = None
    file_type: str | None = None

    @field_validator("action", "entity", "timeframe", "file_type", mode="before")
    @classmethod
    def _nullable(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("keywords", mode="before")
    @classmethod
    def _split_keywords(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.split()
        return v or []


def _parse_action(value: str | None) -> IntentAction:
    if not value:
        return IntentAction.FIND
    key = value.strip().lower()
    try:
        return IntentAction(key)
    except ValueError:
        return _ACTION_ALIASES.get(key, IntentAction.FIND)


def _parse_timeframe(value: str | None) -> Timeframe | None:
    if not value:
        return None
    key = value.strip().lower()
    try:
        return Timeframe(key)
    except ValueError:
        return _TIMEFRAME_ALIASES.get(key)


def fallback_intent(query: str) -> QueryIntent:
    return QueryIntent(action=IntentAction.FIND, keywords=tuple(query.split()))


def intent_from_payload(query: str, payload: IntentPayload) -> QueryIntent:
    keywords = tuple(k.strip() for k in payload.keywords if k and k.strip())
    return QueryIntent(
        action=_parse_action(payload.action),
        keywords=keywords or tuple(query.split()),
        entity=payload.entity.strip() if payload.entity else None,
        timeframe=_parse_timeframe(payload.timeframe),
        file_type=normalize_category(payload.file_type),
    )


class IntentAnalyzer:
    def __init__(self, llm: TextCompletionProvider | None = None):
        self.llm = llm

    async def analyze(self, query: str) -> QueryIntent:
        """Classify the query; any model or parse failure yields the keyword-split fallback."""
        if self.llm is None or not query.strip():
            return fallback_intent(query)

        try:
            raw = await self.llm.complete(
                INTENT_PROMPT.format(query=query),
                system=SEARCH_SYSTEM_PROMPT,
                temperature=INTENT_TEMPERATURE,
                max_tokens=INTENT_MAX_TOKENS,
                response_format=IntentPayload,
            )
        except Exception as e:
            _logger.warning("Intent analysis failed, using keyword fallback: %s", e)
            return fallback_intent(query)

        payload = parse_or_default(raw, IntentPayload, None)
        if payload is None:
            return fallback_intent(query)
        return intent_from_payload(query, payload)


def timeframe_start(timeframe: Timeframe | None, now: datetime | None = None) -> datetime | None:
    """Earliest modification time a document may have to fall inside `timeframe`."""
    if timeframe is None:
        return None
    now = now or datetime.now(UTC)
    match timeframe:
        case Timeframe.TODAY:
            return now.replace(hour=0, minute=0, second=0, microsecond=0)
        case Timeframe.THIS_WEEK:
            return now - timedelta(days=7)
        case Timeframe.THIS_MONTH:
            return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        case Timeframe.THIS_YEAR:
            return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return None


def candidate_filter(intent: QueryIntent, now: datetime | None = None) -> CandidateFilter:
    return CandidateFilter(
        file_types=extensions_for(intent.file_type),
        since=timeframe_start(intent.timeframe, now),
    )


def intent_suggestions(query: str, intent: QueryIntent) -> list[str]:
    suggestions: list[str] = []
    match intent.action:
        case IntentAction.FIND:
            suggestions.append(f'Find documents about "{intent.entity or "related content"}"')
            suggestions.append(f'Search the latest documents related to "{query}"')
        case IntentAction.SUMMARIZE:
            suggestions.append("Summarize the main content of this knowledge base")
            suggestions.append(f'Generate a summary of "{query}"')
        case IntentAction.COMPARE:
            suggestions.append(f'Compare "{query}" across documents')
            suggestions.append(f'Analyze the differences in "{query}"')
        case IntentAction.EXPLAIN:
            suggestions.append(f'Explain "{intent.entity or query}"')
            suggestions.append(f'Find background material on "{query}"')

    if intent.file_type:
        suggestions.append(f"Find {intent.file_type} files")

    return suggestions[:INTENT_SUGGESTION_LIMIT]
