from kbsearch.llm.base import CompletionClient
from kbsearch.llm.provider import TextCompletionProvider
from kbsearch.llm.router import create_completion_client

__all__ = [
    "CompletionClient",
    "TextCompletionProvider",
    "create_completion_client",
]
