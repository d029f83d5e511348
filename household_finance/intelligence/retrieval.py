"""Semantic lookup over stored transactions, insights and chat messages."""
import logging
from typing import List, Optional, Tuple

from household_finance.config import TOP_K_SIMILAR
from household_finance.db.sqlite_store import SQLiteStore
from household_finance.db.vector_store import VectorStore
from household_finance.exceptions import UpstreamServiceError
from household_finance.intelligence.embedder import LocalEmbedder
from household_finance.models import SearchOutcome


logger = logging.getLogger(__name__)


class SemanticSearch:
    """Embed-and-search with a plain filtered lookup as fallback.

    Embedding or vector-search failures never reach the caller: they are logged
    and reported through ``SearchOutcome.degraded``.
    """

    def __init__(
        self,
        store: SQLiteStore,
        vector_store: Optional[VectorStore],
        embedder: Optional[LocalEmbedder]
    ):
        self.store = store
        self.vector_store = vector_store
        self.embedder = embedder

    def _ranked(self, collection: str, text: str, household_id: str, limit: int):
        if self.vector_store is None or self.embedder is None:
            raise UpstreamServiceError("semantic search is not configured")
        try:
            embedding = self.embedder.embed(text)
            hits = self.vector_store.search(collection, embedding, household_id, k=limit)
        except Exception as e:
            raise UpstreamServiceError(f"{collection} vector search failed: {e}") from e

        ids = [int(hit["record_id"]) for hit in hits]
        records = self.store.get_records_by_ids(collection, household_id, ids)
        distances = {int(hit["record_id"]): hit.get("_distance", 0) for hit in hits}
        for record in records:
            record["similarity_score"] = 1 - distances.get(record["id"], 0)
        return records

    def search(
        self,
        collection: str,
        text: str,
        household_id: str,
        limit: int = TOP_K_SIMILAR
    ) -> SearchOutcome:
        """Rank records in ``collection`` by similarity to ``text``."""
        try:
            return SearchOutcome(records=self._ranked(collection, text, household_id, limit))
        except UpstreamServiceError as e:
            logger.warning(f"Falling back to unranked lookup: {e}")
            records = self.store.recent_records(collection, household_id, limit)
            return SearchOutcome(records=records, degraded=True, error=str(e))

    def index(self, collection: str, record_id: int, household_id: str, text: str) -> bool:
        """Embed and store a record. Returns False when the step was skipped."""
        if self.vector_store is None or self.embedder is None:
            logger.debug(f"Skipping {collection} embedding for {record_id}: search not configured")
            return False
        try:
            embedding = self.embedder.embed(text)
            self.vector_store.add_embedding(collection, record_id, household_id, embedding, text)
        except Exception as e:
            logger.warning(f"Skipping {collection} embedding for {record_id}: {e}")
            return False
        return True

    def index_many(self, collection: str, household_id: str, items: List[Tuple[int, str]]) -> int:
        """Embed and store (record_id, text) pairs in one pass.

        Returns how many records were indexed; a failure skips the whole batch.
        """
        if not items:
            return 0
        if self.vector_store is None or self.embedder is None:
            logger.debug(f"Skipping {len(items)} {collection} embeddings: search not configured")
            return 0
        try:
            embeddings = self.embedder.embed_batch([text for _, text in items])
            self.vector_store.add_embeddings(
                collection,
                household_id,
                [(record_id, embedding, text) for (record_id, text), embedding in zip(items, embeddings)]
            )
        except Exception as e:
            logger.warning(f"Skipping {len(items)} {collection} embeddings: {e}")
            return 0
        return len(items)
