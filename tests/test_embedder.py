"""Tests for the local embedder and the text it embeds."""
import pytest
import numpy as np
from unittest.mock import MagicMock, patch


class TestLocalEmbedder:
    """Test cases for LocalEmbedder class (model mocked)."""

    @pytest.fixture
    def mock_model(self, monkeypatch):
        from household_finance.intelligence.embedder import LocalEmbedder

        model = MagicMock()
        model.encode.side_effect = lambda texts, **kwargs: (
            np.ones((len(texts), 384), dtype=np.float64) if isinstance(texts, list)
            else np.ones(384, dtype=np.float64)
        )
        monkeypatch.setattr(LocalEmbedder, "_model", None)
        with patch("sentence_transformers.SentenceTransformer", return_value=model) as factory:
            yield factory, model
        monkeypatch.setattr(LocalEmbedder, "_model", None)

    def test_singleton(self):
        from household_finance.intelligence.embedder import LocalEmbedder

        assert LocalEmbedder() is LocalEmbedder()

    def test_embed_single_text(self, mock_model):
        from household_finance.intelligence.embedder import LocalEmbedder

        embedding = LocalEmbedder().embed("NETFLIX monthly subscription $15.99")

        assert embedding.shape == (384,)
        assert embedding.dtype == np.float32

    def test_model_loaded_once(self, mock_model):
        from household_finance.intelligence.embedder import LocalEmbedder

        factory, _ = mock_model
        embedder = LocalEmbedder()
        embedder.embed("a")
        embedder.embed_batch(["b", "c"])

        factory.assert_called_once_with("all-MiniLM-L6-v2")

    def test_embed_batch(self, mock_model):
        from household_finance.intelligence.embedder import LocalEmbedder

        embeddings = LocalEmbedder().embed_batch(["NETFLIX", "WHOLE FOODS", "SHELL"])

        assert len(embeddings) == 3
        assert all(e.dtype == np.float32 for e in embeddings)


class TestEmbeddingText:
    """Rendering records as embedding text."""

    def test_transaction_text(self):
        from household_finance.intelligence.embedder import transaction_to_text

        text = transaction_to_text({
            "posted_at": "2024-06-03T00:00:00",
            "merchant": "STARBUCKS",
            "amount": -4.75,
            "category": "Dining",
            "account_id": "checking",
            "is_recurring": 0,
        })

        assert text.startswith("2024-06-03 STARBUCKS $4.75")
        assert "category=Dining" in text
        assert "expense" in text and "one-time" in text

    def test_transaction_text_defaults(self):
        from household_finance.intelligence.embedder import transaction_to_text

        text = transaction_to_text({"posted_at": "2024-06-03", "amount": 2500})

        assert "Unknown" in text
        assert "category=Uncategorized" in text
        assert "income" in text

    def test_insight_text(self):
        from household_finance.intelligence.embedder import insight_to_text

        text = insight_to_text({"type": "savings_opportunity", "title": "Review", "body": "Cancel it"})

        assert text == "savings_opportunity Review Cancel it"
