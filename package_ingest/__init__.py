"""
Package Ingest - source-grounded package documents for the search index.

Public API for ingesting npm packages. Fetches metadata and real source
code, parses declarations, scores them, and writes one document per
package version.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from search_index import SearchIndexClient
from settings import Settings

from .indexer import PackageIndexer, build_package_document
from .models import (
    IngestionError,
    IngestionSummary,
    PackageDocument,
    ParsedSymbol,
    RegistryAPIError,
    SourceCodeResult,
    SourceFile,
)
from .parser import SourceParser, parse_source_file, parse_source_files
from .registry import RegistryClient
from .scoring import calculate_relevance_score, filter_relevant_symbols
from .source_fetcher import SourceFetcher

__all__ = [
    'index_package',
    'index_packages',
    'PackageIndexer',
    'build_package_document',
    'IngestionError',
    'IngestionSummary',
    'PackageDocument',
    'ParsedSymbol',
    'RegistryAPIError',
    'SourceCodeResult',
    'SourceFile',
    'SourceParser',
    'parse_source_file',
    'parse_source_files',
    'RegistryClient',
    'SourceFetcher',
    'calculate_relevance_score',
    'filter_relevant_symbols',
]


@asynccontextmanager
async def _indexer_from_settings(
    settings: Optional[Settings],
    index: Optional[SearchIndexClient],
) -> AsyncIterator[PackageIndexer]:
    """PackageIndexer with clients built from settings; owned clients closed on exit."""
    settings = settings or Settings.from_env()
    owned_index = index is None
    if owned_index:
        index = SearchIndexClient(
            settings.require_index(),
            api_key=settings.elastic_api_key,
            index_name=settings.elastic_index,
            timeout=settings.http_timeout,
        )

    registry = RegistryClient(timeout=settings.http_timeout)
    fetcher = SourceFetcher(github_token=settings.github_token, timeout=settings.http_timeout)

    try:
        yield PackageIndexer(index, registry, fetcher)
    finally:
        await fetcher.aclose()
        await registry.aclose()
        if owned_index:
            await index.aclose()


async def index_package(
    package_name: str,
    version: str = "latest",
    settings: Optional[Settings] = None,
    index: Optional[SearchIndexClient] = None,
) -> PackageDocument:
    """
    Ingest one package version with collaborators built from settings.

    Raises:
        ConfigurationError: If no index endpoint is configured
        IngestionError: If metadata cannot be fetched or the index write fails
    """
    async with _indexer_from_settings(settings, index) as indexer:
        return await indexer.index_package(package_name, version)


async def index_packages(
    package_names: Iterable[str],
    settings: Optional[Settings] = None,
    index: Optional[SearchIndexClient] = None,
) -> IngestionSummary:
    """
    Ingest packages with collaborators built from settings.

    This is the unit of work a reindex job runs.

    Args:
        package_names: npm package names, e.g. ["zod", "@upstash/redis"]
        settings: Configuration; read from the environment when omitted
        index: Existing search index client to reuse (left open)

    Returns:
        IngestionSummary with successful/failed counts

    Example:
        >>> summary = await index_packages(["zod", "hono"])
        >>> print(summary.successful, summary.failed)
    """
    async with _indexer_from_settings(settings, index) as indexer:
        return await indexer.index_packages(package_names)
