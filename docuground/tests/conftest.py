from __future__ import annotations

import pytest

from docuground.core.config import Settings
from docuground.providers.embeddings.fake import FakeEmbeddingProvider
from docuground.tests.utils.store import FakeSessionFactory, InMemoryStore, install_fake_repos


@pytest.fixture
def settings() -> Settings:
    # Ignore any local .env so tests never reach a real provider.
    return Settings(
        _env_file=None,
        embedding_provider="fake",
        completion_provider="fake",
        openai_api_key=None,
    )


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> InMemoryStore:
    store = InMemoryStore()
    install_fake_repos(monkeypatch, store)
    return store


@pytest.fixture
def session_factory(store: InMemoryStore) -> FakeSessionFactory:
    return FakeSessionFactory(store)


@pytest.fixture
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()
