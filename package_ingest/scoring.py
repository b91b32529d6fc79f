"""
Symbol relevance filtering and scoring.

The filter drops symbols that make poor grounding context (trivial or bulk
bodies, test and fixture code). The score is a heuristic integer used to
rank symbols when the search cluster returns no nested matches; it is
stored on each symbol at indexing time.
"""

from typing import Iterable, List

from .models import (
    MAX_IMPLEMENTATION_LENGTH,
    MIN_IMPLEMENTATION_LENGTH,
    ParsedSymbol,
)

EXCLUDED_PATH_MARKERS = (
    ".test.",
    ".spec.",
    "__tests__",
    "mock",
    "fixture",
    "__mocks__",
)

IMPORTANT_KEYWORDS = ("fetch", "request", "http", "api", "execute", "call")


def is_relevant(symbol: ParsedSymbol) -> bool:
    """Whether a symbol is worth indexing."""
    length = len(symbol.implementation)
    if length < MIN_IMPLEMENTATION_LENGTH or length > MAX_IMPLEMENTATION_LENGTH:
        return False

    return not any(marker in symbol.file_path for marker in EXCLUDED_PATH_MARKERS)


def filter_relevant_symbols(symbols: Iterable[ParsedSymbol]) -> List[ParsedSymbol]:
    """Keep only relevant symbols, preserving order. Idempotent."""
    return [symbol for symbol in symbols if is_relevant(symbol)]


def calculate_relevance_score(symbol: ParsedSymbol) -> int:
    """
    Score a symbol's usefulness as grounding context.

    Pure function of the symbol's fields; unbounded non-negative integer.
    """
    implementation = symbol.implementation
    score = 0

    if symbol.is_exported:
        score += 10

    if symbol.jsdoc and len(symbol.jsdoc) > 20:
        score += 5

    if not symbol.name.startswith("_"):
        score += 3

    if 100 < len(implementation) < 2000:
        score += 2

    if "async" in implementation or "await" in implementation:
        score += 2

    if "try" in implementation or "catch" in implementation or "throw" in implementation:
        score += 1

    lowered = implementation.lower()
    if any(keyword in lowered for keyword in IMPORTANT_KEYWORDS):
        score += 2

    return score


def create_symbol_search_text(symbol: ParsedSymbol) -> str:
    """Searchable text for one symbol, fed to the semantic source field."""
    parts = []

    if symbol.jsdoc:
        parts.append(symbol.jsdoc)

    parts.append(symbol.signature)
    parts.append(symbol.implementation)
    parts.append(f"File: {symbol.file_path}")
    parts.append(f"Type: {symbol.kind}")

    if symbol.parameters:
        parts.append(f"Parameters: {', '.join(symbol.parameters)}")

    if symbol.return_type:
        parts.append(f"Returns: {symbol.return_type}")

    return "\n\n".join(parts)
