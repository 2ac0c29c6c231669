from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from docuground.core.config import Settings
from docuground.persistence.db import build_engine, build_session_factory
from docuground.providers.embeddings.base import EmbeddingProvider
from docuground.providers.embeddings.factory import get_embedding_provider
from docuground.providers.llm.base import CompletionProvider
from docuground.providers.llm.factory import get_completion_provider
from docuground.services.assistant import AssistantService
from docuground.services.auth.api_keys import ApiKeyService
from docuground.services.ingestion import IngestionCoordinator
from docuground.services.retrieval import RetrievalEngine
from docuground.services.usage import UsageMeter


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    engine: AsyncEngine
    embedder: EmbeddingProvider
    completions: CompletionProvider
    api_keys: ApiKeyService
    usage: UsageMeter
    ingestion: IngestionCoordinator
    retrieval: RetrievalEngine
    assistant: AssistantService

    async def aclose(self) -> None:
        # Providers own pooled HTTP clients; fakes have nothing to close.
        try:
            for provider in (self.embedder, self.completions):
                close = getattr(provider, "aclose", None)
                if close is not None:
                    await close()
        finally:
            await self.engine.dispose()
        logger.info("services_closed")


def build_services(settings: Settings) -> Services:
    # One engine and one embedding provider per process, shared by every service.
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    embedder = get_embedding_provider(settings)
    completions = get_completion_provider(settings)

    api_keys = ApiKeyService(session_factory)
    usage = UsageMeter(session_factory)
    retrieval = RetrievalEngine(session_factory, embedder, ef_search=settings.retrieval_ef_search)
    return Services(
        engine=engine,
        embedder=embedder,
        completions=completions,
        api_keys=api_keys,
        usage=usage,
        ingestion=IngestionCoordinator(session_factory, embedder, settings),
        retrieval=retrieval,
        assistant=AssistantService(
            api_keys=api_keys,
            usage=usage,
            retrieval=retrieval,
            completions=completions,
            settings=settings,
        ),
    )
