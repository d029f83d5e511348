"""Local embedder using sentence-transformers."""
import numpy as np
from typing import Any, Dict, List

from household_finance.config import EMBEDDING_MODEL, EMBEDDING_DIM, UNCATEGORIZED


class LocalEmbedder:
    """Singleton embedder using sentence-transformers for local embeddings.

    Uses all-MiniLM-L6-v2 model (22M params, 384 dims) for efficiency.
    Model is lazy-loaded on first embed call.
    """

    _instance = None
    _model = None
    MODEL_NAME = EMBEDDING_MODEL
    DIM = EMBEDDING_DIM

    def __new__(cls):
        """Singleton pattern - return existing instance if available."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def _ensure_model_loaded(self) -> None:
        """Lazy-load the model on first use."""
        if LocalEmbedder._model is None:
            from sentence_transformers import SentenceTransformer
            LocalEmbedder._model = SentenceTransformer(self.MODEL_NAME)

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text string.

        Args:
            text: Text to embed

        Returns:
            384-dimensional normalized embedding
        """
        self._ensure_model_loaded()
        embedding = LocalEmbedder._model.encode(
            text,
            convert_to_numpy=True,
            normalize_embeddings=True
        )
        return embedding.astype(np.float32)

    def embed_batch(
        self,
        texts: List[str],
        batch_size: int = 32
    ) -> List[np.ndarray]:
        """Embed multiple texts in batch for efficiency."""
        self._ensure_model_loaded()
        embeddings = LocalEmbedder._model.encode(
            texts,
            batch_size=batch_size,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False
        )
        return [e.astype(np.float32) for e in embeddings]


def transaction_to_text(txn: Dict[str, Any]) -> str:
    """Render a transaction row as the text that gets embedded."""
    posted = str(txn.get("posted_at", ""))[:10]
    amount = abs(txn.get("amount") or 0)
    sign = "income" if (txn.get("amount") or 0) >= 0 else "expense"
    recurrence = "recurring" if txn.get("is_recurring") else "one-time"
    text = (
        f"{posted} {txn.get('merchant') or 'Unknown'} ${amount:.2f} "
        f"category={txn.get('category') or UNCATEGORIZED} account={txn.get('account_id')} "
        f"{sign} {recurrence} {txn.get('notes') or ''}"
    )
    return text.strip()


def insight_to_text(insight: Dict[str, Any]) -> str:
    """Render an insight as the text that gets embedded."""
    return f"{insight.get('type', '')} {insight.get('title', '')} {insight.get('body', '')}".strip()
