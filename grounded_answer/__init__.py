"""
Grounded Answer - code answers backed by indexed package source

Public API for answering "how do I X with package Y" questions from the
package search index, and for searching the indexed corpus.
"""

from typing import Any, Dict, List, Optional, Sequence

from search_index import SearchIndexClient
from settings import ConfigurationError, Settings

from .generator import (
    AnswerService,
    GeminiModel,
    GenerativeModel,
    build_models,
    classify_generation_error,
)
from .matcher import PackageMatch, PackageMatcher, PackageNotFoundError
from .retriever import ContextRetriever, extract_text_field
from .types import (
    AnswerRequest,
    AnswerResponse,
    Citation,
    ErrorClass,
    GenerationError,
    PackageContext,
    PackageSearchHit,
    SymbolMatch,
    UngroundedRejection,
)

__all__ = [
    'answer_question',
    'search_packages',
    'AnswerService',
    'ContextRetriever',
    'GeminiModel',
    'GenerativeModel',
    'PackageMatcher',
    'PackageMatch',
    'PackageNotFoundError',
    'build_models',
    'classify_generation_error',
    'extract_text_field',
    'AnswerRequest',
    'AnswerResponse',
    'Citation',
    'ErrorClass',
    'GenerationError',
    'PackageContext',
    'PackageSearchHit',
    'SymbolMatch',
    'UngroundedRejection',
]


def _index_from_settings(settings: Settings) -> SearchIndexClient:
    return SearchIndexClient(
        settings.require_index(),
        api_key=settings.elastic_api_key,
        index_name=settings.elastic_index,
        timeout=settings.http_timeout,
    )


async def answer_question(
    intent: str,
    package_name: str,
    search_query: Optional[str] = None,
    max_snippets: Optional[int] = None,
    settings: Optional[Settings] = None,
    index: Optional[SearchIndexClient] = None,
    models: Optional[Sequence[GenerativeModel]] = None,
) -> Dict[str, Any]:
    """
    Generate a code answer grounded in an indexed package.

    Never raises: configuration problems and generation failures come back
    as ``{"error": message}``.

    Args:
        intent: What the caller wants to accomplish
        package_name: Exact indexed package name, e.g. "@upstash/ratelimit"
        search_query: Retrieval query (defaults to ``intent``)
        max_snippets: Maximum symbol matches to ground in (default 3)
        settings: Configuration; read from the environment when omitted
        index: Existing search index client to reuse (left open)
        models: Models to use instead of the configured Gemini models

    Returns:
        Answer dict (intent, package_name, search_query, code, context,
        grounded, optional note) or ``{"error": message}``

    Example:
        >>> result = await answer_question(
        ...     intent="rate limit an API route to 10 requests per minute",
        ...     package_name="@upstash/ratelimit",
        ... )
        >>> print(result["code"])
    """
    try:
        settings = settings or Settings.from_env()
        if models is None:
            models = build_models(settings)
        owned_index = index is None and bool(models)
        if owned_index:
            index = _index_from_settings(settings)
    except ConfigurationError as e:
        return {"error": str(e)}

    service = AnswerService(
        ContextRetriever(index),
        models,
        max_retries=settings.answer_max_retries,
        allow_ungrounded_fallback=settings.allow_ungrounded_fallback,
    )
    request = AnswerRequest(
        intent=intent,
        package_name=package_name,
        search_query=search_query,
        max_snippets=max_snippets,
    )

    try:
        result = await service.generate_answer(request)
    finally:
        if owned_index:
            await index.aclose()

    if isinstance(result, AnswerResponse):
        return result.to_dict()
    return result


async def search_packages(
    query: str,
    limit: int = 5,
    settings: Optional[Settings] = None,
    index: Optional[SearchIndexClient] = None,
) -> List[PackageSearchHit]:
    """
    Hybrid search over all indexed packages.

    Raises:
        ConfigurationError: If no index endpoint is configured
        SearchIndexError: If the index rejects both hybrid and lexical search
    """
    owned_index = index is None
    if owned_index:
        index = _index_from_settings(settings or Settings.from_env())

    try:
        return await ContextRetriever(index).search_packages(query, limit)
    finally:
        if owned_index:
            await index.aclose()
