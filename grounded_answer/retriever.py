"""
Context retrieval from the package search index.

Finds the symbols that best ground an answer for one package and query.
Levels are tried in order and the first non-empty one wins:

1. Nested symbol search with inner hits (lexical, field-boosted), combined
   with a semantic clause over the package's source content
2. Full document fetch with symbols re-ranked by stored relevance score
3. Empty

Index failures degrade to empty results and are logged; they never reach
the caller.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from cascade import first_result
from search_index import SearchIndexClient, SearchIndexError

from .types import PackageContext, PackageSearchHit, SymbolMatch

logger = logging.getLogger(__name__)

SYMBOL_FIELDS = [
    "symbols.name^3",
    "symbols.implementation^2",
    "symbols.signature",
    "symbols.jsdoc",
]
SYMBOL_SOURCE_FIELDS = [
    "symbols.name",
    "symbols.kind",
    "symbols.file_path",
    "symbols.implementation",
    "symbols.is_exported",
    "symbols.relevance_score",
    "symbols.jsdoc",
    "symbols.signature",
]
PACKAGE_SOURCE_FIELDS = [
    "name",
    "version",
    "description",
    "readme_content",
    "code_examples",
    "exports",
]
SEARCH_SOURCE_FIELDS = ["name", "version", "description", "keywords", "total_symbols"]

SEARCH_CONTEXT_SNIPPETS = 3
RRF_RANK_WINDOW = 50
RRF_RANK_CONSTANT = 60


def extract_text_field(value: Any) -> str:
    """
    Flatten a stored text field to plain text.

    Semantic fields may come back as a string, a list of parts, an object
    with ``text``, or an object with ``chunks: [{text}]``.
    """
    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n".join(
            part if isinstance(part, str) else extract_text_field(part)
            for part in value
        )
    if isinstance(value, dict):
        if isinstance(value.get("text"), str):
            return value["text"]
        if isinstance(value.get("chunks"), list):
            return "\n".join((chunk or {}).get("text") or "" for chunk in value["chunks"])
    return ""


def nested_symbol_clause(query: str, max_snippets: int) -> Dict[str, Any]:
    """Nested multi-match over symbol fields returning up to ``max_snippets`` inner hits."""
    return {
        "nested": {
            "path": "symbols",
            "query": {
                "multi_match": {
                    "query": query,
                    "fields": SYMBOL_FIELDS,
                },
            },
            "inner_hits": {
                "size": max_snippets,
                "_source": SYMBOL_SOURCE_FIELDS,
            },
        },
    }


def rank_symbols(symbols: List[Dict[str, Any]], max_snippets: int) -> List[SymbolMatch]:
    """Stored symbols with an implementation, best relevance score first."""
    usable = [
        symbol for symbol in symbols
        if isinstance(symbol.get("implementation"), str) and symbol["implementation"]
    ]
    usable.sort(key=lambda symbol: symbol.get("relevance_score") or 0, reverse=True)
    return [SymbolMatch.from_source(symbol) for symbol in usable[:max_snippets]]


def inner_hit_matches(hit: Dict[str, Any]) -> List[SymbolMatch]:
    inner = hit.get("inner_hits", {}).get("symbols", {}).get("hits", {}).get("hits", [])
    return [SymbolMatch.from_source(item.get("_source") or {}) for item in inner]


class ContextRetriever:
    """Hybrid retrieval of grounding context from the package index."""

    def __init__(self, index: SearchIndexClient):
        self._index = index

    async def find_context(
        self,
        package_name: str,
        query: str,
        max_snippets: int,
    ) -> Optional[PackageContext]:
        """
        Retrieve package metadata and the best symbol matches for a query.

        Returns:
            PackageContext (symbols possibly empty), or None when the package
            is not indexed or the search failed
        """
        body = {
            "size": 1,
            "query": {
                "bool": {
                    "must": [{"term": {"name": package_name}}],
                    "should": [
                        nested_symbol_clause(query, max_snippets),
                        {"semantic": {"field": "source_code_content", "query": query}},
                    ],
                },
            },
            "_source": PACKAGE_SOURCE_FIELDS,
        }

        try:
            hits = await self._index.search(body)
        except SearchIndexError as e:
            logger.warning("Context search failed for %s: %s", package_name, e)
            return None

        if not hits:
            return None

        hit = hits[0]
        source = hit.get("_source") or {}
        symbols = await self._symbol_cascade(hit, max_snippets)

        return PackageContext(
            name=source.get("name", package_name),
            version=source.get("version", ""),
            symbols=symbols,
            readme=extract_text_field(source.get("readme_content")),
            code_examples=extract_text_field(source.get("code_examples")),
            exports=source.get("exports") or [],
        )

    async def fetch_symbol_context(
        self,
        doc_id: str,
        query: str,
        max_snippets: int,
    ) -> List[SymbolMatch]:
        """Best symbol matches inside one known document; empty on failure."""
        async def nested_search() -> List[SymbolMatch]:
            hits = await self._index.search({
                "size": 1,
                "query": {
                    "bool": {
                        "must": [{"ids": {"values": [doc_id]}}],
                        "should": [nested_symbol_clause(query, max_snippets)],
                    },
                },
                "_source": False,
            })
            return inner_hit_matches(hits[0]) if hits else []

        return await first_result([
            ("Nested symbol search", nested_search),
            ("Full document symbol fetch", lambda: self._ranked_document_symbols(doc_id, max_snippets)),
        ]) or []

    async def search_packages(self, query: str, limit: int) -> List[PackageSearchHit]:
        """
        Hybrid search across all packages.

        Fuses a lexical multi-match with a semantic README query (RRF) and
        falls back to lexical-only search when the cluster rejects the
        semantic retriever. Each hit carries its top symbol matches.
        """
        try:
            hits = await self._index.search(self._hybrid_search_body(query, limit))
        except SearchIndexError as e:
            if e.status_code != 400:
                raise
            logger.warning("Semantic retriever unavailable (%s); falling back to BM25 search", e.message)
            hits = await self._index.search(self._lexical_search_body(query, limit))

        contexts = await asyncio.gather(*(
            self.fetch_symbol_context(hit["_id"], query, SEARCH_CONTEXT_SNIPPETS)
            for hit in hits
        ))

        results = []
        for hit, context in zip(hits, contexts):
            source = hit.get("_source") or {}
            results.append(PackageSearchHit(
                id=hit["_id"],
                score=hit.get("_score") or 0.0,
                name=source.get("name", ""),
                version=source.get("version", ""),
                description=source.get("description") or "",
                keywords=source.get("keywords") or [],
                total_symbols=source.get("total_symbols") or 0,
                context=context,
            ))
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _symbol_cascade(self, hit: Dict[str, Any], max_snippets: int) -> List[SymbolMatch]:
        async def from_inner_hits() -> List[SymbolMatch]:
            return inner_hit_matches(hit)

        return await first_result([
            ("Nested symbol search", from_inner_hits),
            ("Full document symbol fetch", lambda: self._ranked_document_symbols(hit["_id"], max_snippets)),
        ]) or []

    async def _ranked_document_symbols(self, doc_id: str, max_snippets: int) -> List[SymbolMatch]:
        source = await self._index.get_document(doc_id, source_includes=["symbols"])
        return rank_symbols(source.get("symbols") or [], max_snippets)

    def _hybrid_search_body(self, query: str, limit: int) -> Dict[str, Any]:
        return {
            "size": limit,
            "retriever": {
                "rrf": {
                    "retrievers": [
                        {
                            "standard": {
                                "query": {
                                    "multi_match": {
                                        "query": query,
                                        "fields": ["description^3", "readme_content", "keywords^2"],
                                    },
                                },
                            },
                        },
                        {
                            "standard": {
                                "query": {
                                    "semantic": {"field": "readme_content", "query": query},
                                },
                            },
                        },
                    ],
                    "rank_window_size": RRF_RANK_WINDOW,
                    "rank_constant": RRF_RANK_CONSTANT,
                },
            },
            "_source": SEARCH_SOURCE_FIELDS,
        }

    def _lexical_search_body(self, query: str, limit: int) -> Dict[str, Any]:
        return {
            "size": limit,
            "query": {
                "multi_match": {
                    "query": query,
                    "fields": ["name^5", "description^3", "keywords^2", "code_examples"],
                },
            },
            "_source": SEARCH_SOURCE_FIELDS,
        }
