"""
Grounded answer generation with model fallback.

Flow for one request:
- No models configured: fail immediately, no network call
- Retrieve context; grounded means a package document was found and it
  yielded at least one symbol match
- Not grounded and ungrounded fallback disabled: reject, no generation
- Otherwise build the grounded (or ungrounded) prompt and try each model in
  priority order, retrying the same model only for retryable errors

Note: Google GenAI Python SDK is synchronous, so blocking calls are wrapped
with asyncio.to_thread() to keep the event loop free.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Protocol, Sequence, Union

from google import genai

from settings import Settings

from .prompts import build_grounded_prompt, build_ungrounded_prompt
from .retriever import ContextRetriever
from .types import (
    GENERIC_GENERATION_ERROR,
    NO_MODEL_ERROR,
    UNGROUNDED_NOTE,
    AnswerRequest,
    AnswerResponse,
    Citation,
    ErrorClass,
    GenerationError,
    PackageContext,
    UngroundedRejection,
)

logger = logging.getLogger(__name__)

RETRYABLE_MARKERS = ("503", "unavailable", "overloaded")


class GenerativeModel(Protocol):
    """Anything that turns a prompt into text."""
    name: str

    async def generate(self, prompt: str) -> str:
        ...


class GeminiModel:
    """A Gemini model reached through the google-genai client."""

    def __init__(self, client: genai.Client, name: str):
        self._client = client
        self.name = name

    async def generate(self, prompt: str) -> str:
        def _generate_content():
            return self._client.models.generate_content(
                model=self.name,
                contents=prompt,
            )

        response = await asyncio.to_thread(_generate_content)
        if not response.text:
            raise ValueError(f"Empty response from {self.name}")
        return response.text


def build_models(settings: Settings) -> List[GeminiModel]:
    """
    Primary and fallback Gemini models from settings.

    Returns an empty list when no API key is configured.
    """
    if not settings.gemini_api_key:
        return []

    client = genai.Client(api_key=settings.gemini_api_key)
    names = [settings.gemini_model]
    if settings.gemini_fallback_model != settings.gemini_model:
        names.append(settings.gemini_fallback_model)
    return [GeminiModel(client, name) for name in names]


def classify_generation_error(error: BaseException) -> ErrorClass:
    """
    Decide whether a failed attempt is worth repeating on the same model.

    Transient overload/unavailability is retryable; anything else is fatal
    for that model.
    """
    if getattr(error, "code", None) == 503:
        return ErrorClass.RETRYABLE

    message = str(error).lower()
    if any(marker in message for marker in RETRYABLE_MARKERS):
        return ErrorClass.RETRYABLE
    return ErrorClass.FATAL


class AnswerService:
    """
    Generates code answers grounded in a package's indexed source.

    Models are tried in the order given: primary first, then fallbacks.
    """

    def __init__(
        self,
        retriever: ContextRetriever,
        models: Sequence[GenerativeModel],
        max_retries: int = 1,
        allow_ungrounded_fallback: bool = False,
    ):
        self._retriever = retriever
        self._models = [model for model in models if model is not None]
        self._attempts_per_model = max(1, max_retries)
        self._allow_ungrounded = allow_ungrounded_fallback

    async def generate_answer(self, request: AnswerRequest) -> Union[AnswerResponse, Dict[str, str]]:
        """
        Answer one request.

        Returns:
            AnswerResponse on success, otherwise ``{"error": message}``
        """
        if not self._models:
            return {"error": NO_MODEL_ERROR}

        query = request.effective_query

        try:
            context = await self._retrieve(request, query)
            if context is not None:
                prompt = build_grounded_prompt(context, request.intent)
            else:
                prompt = build_ungrounded_prompt(request.package_name, request.intent)
            answer = await self._invoke_models(prompt)
        except (UngroundedRejection, GenerationError) as e:
            logger.warning("Answer for %s failed: %s", request.package_name, e)
            return {"error": str(e)}

        grounded = context is not None
        return AnswerResponse(
            intent=request.intent,
            package_name=request.package_name,
            search_query=query,
            code=answer.strip(),
            context=[Citation.from_match(match) for match in context.symbols] if grounded else [],
            grounded=grounded,
            note=None if grounded else UNGROUNDED_NOTE,
        )

    async def _retrieve(self, request: AnswerRequest, query: str) -> Optional[PackageContext]:
        """
        Grounding context for the request, or None in ungrounded mode.

        Raises:
            UngroundedRejection: If nothing grounds the answer and fallback is off
        """
        try:
            context = await self._retriever.find_context(
                request.package_name,
                query,
                request.snippet_limit,
            )
        except Exception as e:
            logger.warning("Context retrieval failed for %s: %s", request.package_name, e)
            context = None

        if context is not None and context.symbols:
            return context

        if not self._allow_ungrounded:
            raise UngroundedRejection(request.package_name, query)

        logger.info("No grounded context for %s; generating ungrounded answer", request.package_name)
        return None

    async def _invoke_models(self, prompt: str) -> str:
        """
        Try each model in turn until one produces text.

        Raises:
            GenerationError: Carrying the last failure's message once every
                model and attempt is exhausted
        """
        last_error: Optional[Exception] = None

        for model in self._models:
            for attempt in range(1, self._attempts_per_model + 1):
                try:
                    return await model.generate(prompt)
                except Exception as e:
                    last_error = e
                    error_class = classify_generation_error(e)
                    logger.warning(
                        "Model %s attempt %d/%d failed (%s): %s",
                        model.name, attempt, self._attempts_per_model, error_class.value, e,
                    )
                    if error_class is ErrorClass.FATAL:
                        break

        message = str(last_error) if last_error is not None and str(last_error) else GENERIC_GENERATION_ERROR
        raise GenerationError(message)
