import litellm
import numpy as np

from kbsearch.constants import EMBEDDING_TEXT_LIMIT
from kbsearch.llm.models import get_embedding_model


class EmbeddingDimensionError(ValueError):
    pass


class Embedder:
    def __init__(self, model: str):
        self.model = model
        self.dim = get_embedding_model(model).dim

    def _normalize(self, embeddings: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(embeddings, axis=1, keepdims=True)
        return embeddings / np.where(norms == 0, 1, norms)

    def _parse_response(self, response) -> np.ndarray:
        sorted_data = sorted(response.data, key=lambda x: x["index"])
        embeddings = np.array([item["embedding"] for item in sorted_data], dtype=np.float32)
        if embeddings.ndim != 2 or embeddings.shape[1] != self.dim:
            raise EmbeddingDimensionError(f"{self.model} returned shape {embeddings.shape}, expected (*, {self.dim})")
        return self._normalize(embeddings)

    async def embed(self, texts: list[str]) -> np.ndarray:
        if not texts:
            return np.array([])
        truncated = [t[:EMBEDDING_TEXT_LIMIT] for t in texts]
        response = await litellm.aembedding(model=self.model, input=truncated)
        return self._parse_response(response)
