import openai

from kbsearch.config import Config, get_config
from kbsearch.llm.provider import TextCompletionProvider
from kbsearch.llm.router import create_completion_client
from kbsearch.logging import get_logger
from kbsearch.search.embedder import Embedder
from kbsearch.search.file_types import TypePreferences
from kbsearch.search.intent import IntentAnalyzer
from kbsearch.search.semantic import EmbeddingSemanticScorer, KeywordScorer, LLMSemanticScorer, SemanticScorer
from kbsearch.search.service import HybridSearch
from kbsearch.search.store import DocumentStore

_logger = get_logger(__name__)


class Runtime:
    """Everything a process needs to serve searches, built once from config.

    Collaborators can be passed in to replace the configured ones (tests do this).
    """

    def __init__(
        self,
        config: Config | None = None,
        store: DocumentStore | None = None,
        llm: TextCompletionProvider | None = None,
        embedder: Embedder | None = None,
    ):
        self.config = config or get_config()
        self.store = store or DocumentStore(self.config.db_path)
        self.llm = llm or self._build_llm()
        if embedder is None and self.config.embedding_model:
            embedder = Embedder(self.config.embedding_model)
        self.embedder = embedder

        self.preferences = (
            TypePreferences.from_file(self.config.type_preferences)
            if self.config.type_preferences
            else TypePreferences()
        )
        self.search = HybridSearch(
            store=self.store,
            analyzer=IntentAnalyzer(self.llm),
            scorer=self._build_scorer(),
            preferences=self.preferences,
            weights=self.config.weights,
            candidate_limit=self.config.candidate_limit,
            batch_concurrency=self.config.batch_concurrency,
        )
        self._connected = False

    def _build_llm(self) -> TextCompletionProvider | None:
        try:
            client = create_completion_client(self.config)
        except openai.OpenAIError as e:
            _logger.warning("No completion client, semantic search falls back to keywords: %s", e)
            return None
        return TextCompletionProvider(client, model=self.config.completion_model, timeout=self.config.llm_timeout)

    def _build_scorer(self) -> SemanticScorer:
        if self.config.semantic_strategy == "embedding" and self.embedder is not None:
            return EmbeddingSemanticScorer(self.embedder)
        if self.llm is None:
            return KeywordScorer()
        return LLMSemanticScorer(self.llm)

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self._connected:
            return
        self.config.db_dir.mkdir(parents=True, exist_ok=True)
        await self.store.connect()
        self._connected = True
        _logger.info(
            "Runtime ready (db=%s, model=%s, strategy=%s)",
            self.config.db_path,
            self.config.completion_model,
            self.config.semantic_strategy,
        )

    async def close(self) -> None:
        await self.store.close()
        if self.llm:
            await self.llm.close()
        self._connected = False
