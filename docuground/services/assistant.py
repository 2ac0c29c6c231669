from __future__ import annotations

from dataclasses import dataclass
import logging

from docuground.core.config import Settings
from docuground.core.errors import InvalidApiKeyError, SearchError, UsageLimitExceededError
from docuground.domain.metadata import UsageMetadata
from docuground.providers.llm.base import CompletionProvider
from docuground.services.auth.api_keys import ApiKeyService
from docuground.services.ingestion import resolve_project_scope
from docuground.services.retrieval import RetrievalEngine, RetrievedChunk
from docuground.services.usage import UsageMeter


logger = logging.getLogger(__name__)

CHAT_ENDPOINT = "/api/chat"
SEARCH_UNAVAILABLE_WARNING = "Document search temporarily unavailable"

_GROUNDED_PROMPT = (
    "You are a helpful documentation assistant. Use the following context from the "
    "customer's documentation to answer their questions accurately and helpfully. If the "
    "context doesn't contain relevant information, say so clearly.\n\n"
    "Context from documentation:\n{context}\n\n"
    "Please provide a helpful response based on the user's question and the available "
    "documentation context."
)
_UNGROUNDED_PROMPT = (
    "You are a helpful documentation assistant. The user is asking a question, but no "
    "relevant documentation context was found in their uploaded documents. Please provide a "
    "helpful response or suggest they upload relevant documentation."
)


@dataclass(frozen=True)
class AssistantAnswer:
    response: str
    tokens_used: int
    cost: float
    relevant_chunks: int
    usage_remaining: int
    model: str
    search_warning: str | None = None


def build_system_prompt(chunks: list[RetrievedChunk]) -> str:
    context = "\n\n".join(chunk.content for chunk in chunks)
    if not context:
        return _UNGROUNDED_PROMPT
    return _GROUNDED_PROMPT.format(context=context)


class AssistantService:
    def __init__(
        self,
        *,
        api_keys: ApiKeyService,
        usage: UsageMeter,
        retrieval: RetrievalEngine,
        completions: CompletionProvider,
        settings: Settings,
    ) -> None:
        self._api_keys = api_keys
        self._usage = usage
        self._retrieval = retrieval
        self._completions = completions
        self._settings = settings

    async def answer(
        self,
        message: str,
        api_key: str,
        *,
        project_id: str | None = None,
        model: str | None = None,
    ) -> AssistantAnswer:
        if not message or not api_key:
            raise ValueError("Message and API key are required")

        verification = await self._api_keys.verify_api_key(api_key)
        if not verification.valid or verification.account_id is None:
            raise InvalidApiKeyError("Invalid or expired API key")
        account_id = verification.account_id

        usage = await self._usage.check_usage_limit(account_id)
        if not usage.allowed:
            raise UsageLimitExceededError(usage.current, usage.limit)

        scope = resolve_project_scope(project_id, account_id)
        chunks: list[RetrievedChunk] = []
        search_warning: str | None = None
        try:
            chunks = await self._retrieval.search_similar_chunks(
                message,
                scope,
                limit=self._settings.retrieval_default_limit,
                threshold=self._settings.retrieval_default_threshold,
            )
        except SearchError as exc:
            # Answer without context rather than failing the request.
            logger.warning("assistant_search_degraded account_id=%s project_id=%s", account_id, scope, exc_info=exc)
            search_warning = SEARCH_UNAVAILABLE_WARNING

        resolved_model = model or self._settings.completion_model
        completion = await self._completions.complete(
            [
                {"role": "system", "content": build_system_prompt(chunks)},
                {"role": "user", "content": message},
            ],
            model=resolved_model,
        )
        tokens_used = completion.total_tokens
        cost = (tokens_used / 1000) * self._settings.completion_cost_per_1k_tokens

        # The audit row is observability only; its result is not checked.
        await self._usage.record_usage(
            account_id,
            verification.key_id,
            CHAT_ENDPOINT,
            tokens_used,
            cost,
            metadata=UsageMetadata(
                model=resolved_model,
                relevant_chunks=len(chunks),
                project_id=scope,
            ),
        )
        await self._usage.increment_usage(account_id, tokens_used)

        return AssistantAnswer(
            response=completion.text,
            tokens_used=tokens_used,
            cost=cost,
            relevant_chunks=len(chunks),
            usage_remaining=usage.limit - usage.current - tokens_used,
            model=resolved_model,
            search_warning=search_warning,
        )
