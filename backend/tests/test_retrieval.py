"""Tests for retrieval utilities."""

from __future__ import annotations

from ragline.models.entities import IndexEntry
from ragline.providers import HashedEmbeddingProvider

from conftest import TEST_DIM

ML_TEXT = (
    "Machine learning is a field of artificial intelligence. "
    "Machine learning models learn patterns from data."
)
DL_TEXT = (
    "Deep learning uses neural networks with many layers. "
    "Deep learning is a subset of machine learning."
)
COOKING_TEXT = "Bake the bread at high heat until the crust turns golden brown."


def test_machine_learning_ranks_above_deep_learning(ingest, retrieval) -> None:
    ml_id = ingest("ml.txt", ML_TEXT)
    dl_id = ingest("dl.txt", DL_TEXT)
    ingest("cooking.txt", COOKING_TEXT)

    results = retrieval.search("machine learning", max_results=3)

    assert [result.document.id for result in results][:2] == [ml_id, dl_id]
    assert results[0].score > results[1].score


def test_deep_learning_query_prefers_deep_learning(ingest, retrieval) -> None:
    ingest("ml.txt", ML_TEXT)
    dl_id = ingest("dl.txt", DL_TEXT)

    results = retrieval.search("neural networks with many layers", max_results=2)

    assert results[0].document.id == dl_id


def test_exact_chunk_text_is_self_similar(ingest, retrieval, store) -> None:
    document_id = ingest("ml.txt", ML_TEXT)
    (chunk,) = store.chunks_for(document_id)

    results = retrieval.search(chunk.text, max_results=1)

    assert results[0].document.id == document_id
    assert results[0].score >= 0.99
    assert results[0].chunks[0].chunk.id == chunk.id


def test_empty_index_returns_no_results(retrieval) -> None:
    assert retrieval.search("anything at all", max_results=5) == []


def test_non_positive_max_results_returns_nothing(ingest, retrieval) -> None:
    ingest("ml.txt", ML_TEXT)
    assert retrieval.search("machine learning", max_results=0) == []


def test_results_are_unique_sorted_and_capped(ingest, retrieval) -> None:
    for n in range(6):
        ingest(f"doc{n}.txt", f"Shared vocabulary about retrieval number {n}. " * 8)

    results = retrieval.search("retrieval vocabulary", max_results=4)

    assert len(results) == 4
    ids = [result.document.id for result in results]
    assert len(set(ids)) == len(ids)
    scores = [result.score for result in results]
    assert scores == sorted(scores, reverse=True)
    for result in results:
        assert result.score == max(hit.similarity for hit in result.chunks)
        assert len(result.chunks) <= retrieval.settings.search_chunk_preview


def test_documents_not_ready_are_excluded(retrieval, store, vector_index) -> None:
    pending = store.create_document("pending.txt", ML_TEXT, {})
    vector = HashedEmbeddingProvider(dim=TEST_DIM).embed([ML_TEXT])[0]
    vector_index.insert([IndexEntry(chunk_id="chk_orphan", document_id=pending.id, vector=tuple(vector))])

    assert retrieval.search(ML_TEXT, max_results=5) == []


def test_min_similarity_filters_weak_matches(ingest, retrieval) -> None:
    ingest("ml.txt", ML_TEXT)
    ingest("cooking.txt", COOKING_TEXT)
    retrieval.settings.search_min_similarity = 0.3

    results = retrieval.search("machine learning models", max_results=5)

    assert [result.document.filename for result in results] == ["ml.txt"]


def test_deleted_document_disappears_from_results(pipeline, ingest, retrieval) -> None:
    ml_id = ingest("ml.txt", ML_TEXT)
    pipeline.delete(ml_id)

    results = retrieval.search("machine learning", max_results=5)

    assert all(result.document.id != ml_id for result in results)


def test_deep_learning_scenario(ingest, retrieval) -> None:
    doc_id = ingest("ai.txt", "Machine learning is a subset of AI. Deep learning uses neural networks.")
    ingest("bakery.txt", "Bake bread golden brown.")

    results = retrieval.search("What is deep learning?", 3)

    assert [result.document.id for result in results] == [doc_id]
    assert any("Deep learning uses neural networks" in hit.chunk.text for hit in results[0].chunks)
