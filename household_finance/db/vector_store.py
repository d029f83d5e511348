"""LanceDB vector store for transaction, insight and chat embeddings."""
import lancedb
import numpy as np
from pathlib import Path
from typing import List, Dict, Any, Tuple
import pyarrow as pa


class VectorStore:
    """LanceDB storage for household embeddings with semantic search.

    One table per collection; every row carries the household id so searches
    can be prefiltered to a single household.
    """

    COLLECTIONS = ("transactions", "insights", "chat_messages")

    def __init__(self, db_path: Path, dim: int = 384):
        """Initialize the vector store.

        Args:
            db_path: Path to LanceDB directory
            dim: Embedding dimension (default 384 for all-MiniLM-L6-v2)
        """
        self.db_path = db_path
        self.dim = dim
        self.db = lancedb.connect(str(db_path))
        self.tables = {name: self._get_or_create_table(name) for name in self.COLLECTIONS}

    def _get_or_create_table(self, name: str):
        """Get existing table or create new one."""
        if name in self.db.table_names():
            return self.db.open_table(name)

        schema = pa.schema([
            pa.field("record_id", pa.int64()),
            pa.field("household_id", pa.string()),
            pa.field("vector", pa.list_(pa.float32(), self.dim)),
            pa.field("text", pa.string()),
        ])
        return self.db.create_table(name, schema=schema)

    def _table(self, collection: str):
        if collection not in self.tables:
            raise ValueError(f"Unknown collection: {collection}")
        return self.tables[collection]

    def close(self) -> None:
        """Close the database connection."""
        # LanceDB doesn't need explicit close, but we keep the method for API consistency
        pass

    def add_embedding(
        self,
        collection: str,
        record_id: int,
        household_id: str,
        embedding: np.ndarray,
        text: str
    ) -> None:
        """Add a single embedding with metadata."""
        self.add_embeddings(collection, household_id, [(record_id, embedding, text)])

    def add_embeddings(
        self,
        collection: str,
        household_id: str,
        items: List[Tuple[int, np.ndarray, str]]
    ) -> None:
        """Add (record_id, embedding, text) rows for one household in one write."""
        if not items:
            return
        self._table(collection).add([
            {
                "record_id": record_id,
                "household_id": household_id,
                "vector": embedding.tolist() if isinstance(embedding, np.ndarray) else list(embedding),
                "text": text,
            }
            for record_id, embedding, text in items
        ])

    def search(
        self,
        collection: str,
        query_embedding: np.ndarray,
        household_id: str,
        k: int = 5
    ) -> List[Dict[str, Any]]:
        """Search for similar embeddings within one household.

        Returns:
            List of dicts with record_id, household_id, text and _distance
        """
        table = self._table(collection)
        if table.count_rows() == 0:
            return []

        household = household_id.replace("'", "''")
        return (
            table.search(query_embedding.tolist())
            .where(f"household_id = '{household}'", prefilter=True)
            .limit(k)
            .to_list()
        )

