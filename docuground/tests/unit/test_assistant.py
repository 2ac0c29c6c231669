from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from docuground.core.errors import InvalidApiKeyError, UsageLimitExceededError
from docuground.providers.llm.fake import FakeCompletionProvider
from docuground.services.assistant import (
    CHAT_ENDPOINT,
    SEARCH_UNAVAILABLE_WARNING,
    AssistantService,
    build_system_prompt,
)
from docuground.services.auth.api_keys import ApiKeyService
from docuground.services.ingestion import IngestionCoordinator
from docuground.services.retrieval import RetrievalEngine, RetrievedChunk
from docuground.services.usage import UsageMeter


@pytest.fixture
def completions() -> FakeCompletionProvider:
    return FakeCompletionProvider(response="Upload files from the dashboard.", total_tokens=100)


@pytest.fixture
def api_keys(session_factory) -> ApiKeyService:
    return ApiKeyService(session_factory)


@pytest.fixture
def assistant(session_factory, embedder, settings, api_keys, completions) -> AssistantService:
    return AssistantService(
        api_keys=api_keys,
        usage=UsageMeter(session_factory),
        retrieval=RetrievalEngine(session_factory, embedder),
        completions=completions,
        settings=settings,
    )


@pytest.fixture
async def raw_key(store, api_keys) -> str:
    store.add_account("acct-1", usage_limit=1000, current_usage=200)
    created = await api_keys.create_api_key("acct-1", "assistant")
    return created.api_key


def test_system_prompt_mentions_missing_context() -> None:
    assert "no relevant documentation context was found" in build_system_prompt([])


def test_system_prompt_embeds_chunk_content() -> None:
    chunk = RetrievedChunk(id=None, document_id="d", chunk_index=0, content="Reset via settings.", similarity=0.9)
    prompt = build_system_prompt([chunk])

    assert "Context from documentation:\nReset via settings." in prompt


@pytest.mark.asyncio
async def test_answer_uses_account_scope_and_charges_tokens(
    assistant, raw_key, store, session_factory, embedder, settings, completions
) -> None:
    coordinator = IngestionCoordinator(session_factory, embedder, settings)
    await coordinator.process_upload(b"Upload files from the dashboard page.", "faq.txt", "text/plain", None, "acct-1")

    answer = await assistant.answer("Upload files from the dashboard page", raw_key)

    assert answer.response == "Upload files from the dashboard."
    assert answer.tokens_used == 100
    assert answer.relevant_chunks == 1
    assert answer.search_warning is None
    assert answer.cost == pytest.approx(100 / 1000 * settings.completion_cost_per_1k_tokens)
    assert answer.usage_remaining == 1000 - 200 - 100
    assert answer.model == settings.completion_model
    assert store.accounts["acct-1"].current_usage == 300
    [record] = store.usage_records
    assert record.endpoint == CHAT_ENDPOINT
    assert record.tokens_used == 100
    assert record.cost == Decimal(str(answer.cost))
    assert record.metadata_json["relevant_chunks"] == 1
    assert record.metadata_json["project_id"] == "acct-1"
    messages, model = completions.calls[0]
    assert "Upload files from the dashboard page." in messages[0]["content"]
    assert messages[1] == {"role": "user", "content": "Upload files from the dashboard page"}
    assert model == settings.completion_model


@pytest.mark.asyncio
async def test_search_failure_degrades_to_ungrounded_answer(assistant, raw_key, store, completions) -> None:
    store.failures["match_document_chunks"] = SQLAlchemyError("timeout")

    answer = await assistant.answer("Anything?", raw_key, model="gpt-custom")

    assert answer.search_warning == SEARCH_UNAVAILABLE_WARNING
    assert answer.relevant_chunks == 0
    assert answer.model == "gpt-custom"
    messages, _ = completions.calls[0]
    assert messages[0]["content"] == build_system_prompt([])


@pytest.mark.asyncio
async def test_invalid_key_is_rejected_before_any_work(assistant, store, completions) -> None:
    with pytest.raises(InvalidApiKeyError):
        await assistant.answer("hello", "rub_00000000000000000000000000000000")

    assert completions.calls == []
    assert store.usage_records == []


@pytest.mark.asyncio
async def test_exhausted_account_is_rejected(assistant, raw_key, store, completions) -> None:
    store.accounts["acct-1"].current_usage = 1000

    with pytest.raises(UsageLimitExceededError) as excinfo:
        await assistant.answer("hello", raw_key)

    assert excinfo.value.current == 1000
    assert excinfo.value.limit == 1000
    assert completions.calls == []


@pytest.mark.asyncio
async def test_lost_usage_record_does_not_fail_the_answer(assistant, raw_key, store) -> None:
    store.failures["insert_usage_record"] = SQLAlchemyError("disk full")

    answer = await assistant.answer("hello", raw_key)

    assert answer.tokens_used == 100
    assert store.usage_records == []
    assert store.accounts["acct-1"].current_usage == 300


@pytest.mark.asyncio
async def test_missing_inputs_are_rejected(assistant) -> None:
    with pytest.raises(ValueError):
        await assistant.answer("", "rub_x")
    with pytest.raises(ValueError):
        await assistant.answer("hello", "")
