"""
Package document assembly and indexing.

Runs the ingestion pipeline for one package version:
metadata -> legacy exports + README examples -> source fetch -> parse ->
filter -> score -> document -> full replace in the search index.

Packages in a batch are processed one at a time; a failure is recorded
and the batch moves on.
"""

import dataclasses
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from search_index import SearchIndexClient

from .models import (
    SYMBOL_SEPARATOR,
    ExportInfo,
    IngestionError,
    IngestionSummary,
    PackageData,
    PackageDocument,
    ParsedSymbol,
    SourceCodeResult,
)
from .parser import SourceParser, parse_source_files
from .registry import (
    RegistryClient,
    extract_code_blocks,
    extract_exports_simple,
    prepare_readme_content,
)
from .scoring import (
    calculate_relevance_score,
    create_symbol_search_text,
    filter_relevant_symbols,
)
from .source_fetcher import SourceFetcher

logger = logging.getLogger(__name__)


def score_symbols(symbols: Iterable[ParsedSymbol]) -> List[ParsedSymbol]:
    """Copies of ``symbols`` with their relevance score filled in."""
    return [
        dataclasses.replace(symbol, relevance_score=calculate_relevance_score(symbol))
        for symbol in symbols
    ]


def build_package_document(
    package_data: PackageData,
    requested_name: str,
    source: Optional[SourceCodeResult],
    symbols: List[ParsedSymbol],
) -> PackageDocument:
    """
    Assemble the retrieval document for one package version.

    Args:
        package_data: Registry metadata, README and declaration text
        requested_name: Name used when package.json does not carry one
        source: Fetched source files, or None when every strategy failed
        symbols: Filtered, scored symbols parsed from ``source``
    """
    pkg = package_data.package_json
    exports: List[ExportInfo] = extract_exports_simple(package_data.dts)
    code_blocks = extract_code_blocks(package_data.readme)

    has_source = source is not None and bool(source.files)
    if not has_source:
        symbols = []

    return PackageDocument(
        name=pkg.get("name") or requested_name,
        version=pkg.get("version") or "unknown",
        description=pkg.get("description") or "",
        keywords=list(pkg.get("keywords") or []),
        readme_content=prepare_readme_content(package_data.readme, code_blocks),
        repository_url=package_data.repository_url,
        source_strategy=source.strategy if has_source else "none",
        exports=exports,
        symbols=symbols,
        source_code_content=SYMBOL_SEPARATOR.join(
            create_symbol_search_text(symbol) for symbol in symbols
        ),
        code_examples="\n\n".join(code_blocks),
        total_source_files=len(source.files) if has_source else 0,
        total_source_size=source.total_size if has_source else 0,
        indexed_at=datetime.now(timezone.utc).isoformat(),
    )


class PackageIndexer:
    """
    Ingests packages into the search index.

    Collaborators are injected so the same pipeline runs against live
    services or test doubles.
    """

    def __init__(
        self,
        index: SearchIndexClient,
        registry: RegistryClient,
        fetcher: SourceFetcher,
        parser: Optional[SourceParser] = None,
    ):
        self._index = index
        self._registry = registry
        self._fetcher = fetcher
        self._parser = parser

    async def index_package(self, package_name: str, version: str = "latest") -> PackageDocument:
        """
        Ingest one package version, replacing its document wholesale.

        Returns:
            The document that was written

        Raises:
            IngestionError: If metadata cannot be fetched or the index write fails
        """
        logger.info("Indexing %s@%s", package_name, version)

        try:
            package_data = await self._registry.fetch_package(package_name, version)
        except Exception as e:
            raise IngestionError(package_name, "metadata", e) from e

        resolved_version = package_data.package_json.get("version") or version
        source = await self._fetcher.fetch(
            package_name,
            resolved_version,
            package_data.repository_url,
        )

        symbols: List[ParsedSymbol] = []
        if source and source.files:
            logger.info("Parsing %d source files", len(source.files))
            parsed = parse_source_files(source.files, self._parser)
            symbols = score_symbols(filter_relevant_symbols(parsed))
            logger.info(
                "Kept %d of %d parsed symbols (strategy: %s)",
                len(symbols), len(parsed), source.strategy,
            )
        else:
            logger.warning("No source code found for %s, using README only", package_name)

        document = build_package_document(package_data, package_name, source, symbols)

        try:
            await self._index.index_document(document.doc_id, document.to_document())
        except Exception as e:
            raise IngestionError(package_name, "index", e) from e

        exported = sum(1 for s in document.symbols if s.is_exported)
        average = (
            sum(s.relevance_score for s in document.symbols) / document.total_symbols
            if document.total_symbols else 0.0
        )
        logger.info(
            "Indexed %s: %d symbols (%d public, %d internal), avg relevance %.1f, %d files, %dKB",
            document.doc_id,
            document.total_symbols,
            exported,
            document.total_symbols - exported,
            average,
            document.total_source_files,
            document.total_source_size // 1024,
        )
        return document

    async def index_packages(self, package_names: Iterable[str]) -> IngestionSummary:
        """
        Ingest packages one after another.

        A failing package is logged and counted; it never stops the batch.
        """
        names = list(package_names)
        logger.info("Starting ingestion for %d packages", len(names))

        summary = IngestionSummary()
        for name in names:
            try:
                await self.index_package(name)
            except Exception as e:
                summary.failed += 1
                summary.failures[name] = str(e)
                logger.error("Skipping %s: %s", name, e)
            else:
                summary.successful += 1

        logger.info(
            "Ingestion finished: %d/%d successful, %d failed",
            summary.successful, summary.total, summary.failed,
        )
        return summary
