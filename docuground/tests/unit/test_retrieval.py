from __future__ import annotations

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError

from docuground.core.errors import EmbeddingError, SearchError
from docuground.ingestion.embeddings import hashed_embedding
from docuground.persistence.repos import chunks as chunks_repo
from docuground.persistence.repos.chunks import build_match_stmt, build_search_width_stmt
from docuground.providers.embeddings.fake import FakeEmbeddingProvider
from docuground.providers.embeddings.openai import OpenAIEmbeddingProvider
from docuground.services.ingestion import IngestionCoordinator
from docuground.services.retrieval import RetrievalEngine


class BrokenEmbeddingProvider(FakeEmbeddingProvider):
    async def embed(self, texts: list[str]) -> list[list[float]]:
        raise EmbeddingError("embedding generation failed: timeout")


@pytest.fixture
def engine(session_factory, embedder) -> RetrievalEngine:
    return RetrievalEngine(session_factory, embedder)


@pytest.fixture
def ingest(session_factory, embedder, settings):
    coordinator = IngestionCoordinator(session_factory, embedder, settings)

    async def _ingest(text: str, project_id: str = "proj-1") -> str:
        result = await coordinator.process_document(
            text.encode("utf-8"), "doc.txt", "text/plain", project_id, "acct-1"
        )
        return result.document_id

    return _ingest


def test_match_statement_filters_scope_and_orders_by_distance() -> None:
    stmt = build_match_stmt(
        hashed_embedding("query"),
        similarity_threshold=0.7,
        match_count=5,
        project_id="proj-1",
    )
    compiled = str(stmt.compile(dialect=postgresql.dialect()))

    assert "<=>" in compiled
    assert "documents.project_id" in compiled
    assert "documents.upload_status" in compiled
    assert "ORDER BY" in compiled
    assert "LIMIT" in compiled


def test_search_width_covers_the_limit_and_stays_in_range() -> None:
    assert str(build_search_width_stmt(100, 5)) == "SET LOCAL hnsw.ef_search = 100"
    assert str(build_search_width_stmt(40, 200)) == "SET LOCAL hnsw.ef_search = 200"
    assert str(build_search_width_stmt(5000, 5)) == "SET LOCAL hnsw.ef_search = 1000"
    assert str(build_search_width_stmt(0, 0)) == "SET LOCAL hnsw.ef_search = 1"


@pytest.mark.asyncio
async def test_search_passes_configured_width_to_the_store(session_factory, embedder, store, monkeypatch) -> None:
    seen: list[int] = []
    match = chunks_repo.match_document_chunks

    async def recording_match(session, **kwargs):
        seen.append(kwargs["ef_search"])
        return await match(session, **kwargs)

    monkeypatch.setattr(chunks_repo, "match_document_chunks", recording_match)
    engine = RetrievalEngine(session_factory, embedder, ef_search=250)

    assert await engine.search_similar_chunks("anything", "proj-1") == []
    assert seen == [250]


@pytest.mark.asyncio
async def test_empty_store_returns_empty_list(engine, store) -> None:
    assert await engine.search_similar_chunks("anything", "proj-1") == []


@pytest.mark.asyncio
async def test_relevant_chunk_is_found_and_unrelated_filtered(engine, ingest) -> None:
    wanted = await ingest("Postgres vector search tips.")
    await ingest("Baking sourdough bread at home.")

    results = await engine.search_similar_chunks("Postgres vector search tips", "proj-1", threshold=0.5)

    assert [result.document_id for result in results] == [wanted]
    assert results[0].similarity == pytest.approx(1.0)
    assert 0.0 <= results[0].similarity <= 1.0
    assert results[0].metadata["document_id"] == wanted


@pytest.mark.asyncio
async def test_results_are_sorted_and_limited(engine, ingest) -> None:
    exact = await ingest("Postgres vector search tips.")
    await ingest("Postgres vector tips for beginners.")
    await ingest("Postgres search tips and vector tricks for experts.")

    results = await engine.search_similar_chunks("Postgres vector search tips", "proj-1", limit=2, threshold=0.1)

    assert len(results) == 2
    assert results[0].document_id == exact
    similarities = [result.similarity for result in results]
    assert similarities == sorted(similarities, reverse=True)
    assert all(similarity >= 0.1 for similarity in similarities)


@pytest.mark.asyncio
async def test_search_is_scoped_to_the_project(engine, ingest) -> None:
    await ingest("Shared handbook content.", project_id="proj-other")

    assert await engine.search_similar_chunks("Shared handbook content", "proj-1", threshold=0.0) == []


@pytest.mark.asyncio
async def test_chunks_of_unfinished_documents_are_invisible(engine, ingest, store) -> None:
    doc_id = await ingest("Release checklist steps.")
    store.documents[doc_id].upload_status = "failed"

    assert await engine.search_similar_chunks("Release checklist steps", "proj-1", threshold=0.0) == []


@pytest.mark.asyncio
async def test_embedding_failure_becomes_search_error(session_factory, store) -> None:
    engine = RetrievalEngine(session_factory, BrokenEmbeddingProvider())

    with pytest.raises(SearchError):
        await engine.search_similar_chunks("query", "proj-1")


@pytest.mark.asyncio
async def test_missing_provider_credentials_become_search_error(session_factory, settings, store) -> None:
    engine = RetrievalEngine(session_factory, OpenAIEmbeddingProvider(settings))

    with pytest.raises(SearchError):
        await engine.search_similar_chunks("query", "proj-1")


@pytest.mark.asyncio
async def test_store_failure_becomes_search_error(engine, store) -> None:
    store.failures["match_document_chunks"] = SQLAlchemyError("statement timeout")

    with pytest.raises(SearchError) as excinfo:
        await engine.search_similar_chunks("query", "proj-1")
    assert str(excinfo.value) == "Vector search failed"


@pytest.mark.asyncio
async def test_arguments_are_validated(engine, store) -> None:
    with pytest.raises(ValueError):
        await engine.search_similar_chunks("query", "proj-1", threshold=1.5)
    with pytest.raises(ValueError):
        await engine.search_similar_chunks("query", "proj-1", limit=0)
