import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from kbsearch.logging import get_logger

_logger = get_logger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

T = TypeVar("T", bound=BaseModel)
D = TypeVar("D")


def _candidates(raw: str) -> list[str]:
    text = raw.strip()
    if match := _FENCE_RE.match(text):
        text = match.group(1)
    found = [text]
    # Models sometimes wrap the payload in prose
    if match := _OBJECT_RE.search(text):
        if match.group(0) != text:
            found.append(match.group(0))
    return found


def parse_or_default(raw: str | None, schema: type[T], default: D) -> T | D:
    """Validate a structured model response against `schema`.

    Tolerates markdown code fences and prose around a single JSON object.
    Returns `default` when nothing validates; never raises.
    """
    if not raw or not raw.strip():
        return default

    for candidate in _candidates(raw):
        try:
            return schema.model_validate_json(candidate)
        except ValidationError:
            continue

    _logger.warning("Unparseable %s payload: %.200s", schema.__name__, raw)
    return default
