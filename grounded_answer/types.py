"""
Internal types for the grounded answer pipeline.

Request/response shapes and retrieval results. Validation of external input
happens at the MCP boundary (server.py); these are plain dataclasses.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================================
# Constants
# ============================================================================

DEFAULT_MAX_SNIPPETS = 3
SNIPPET_LENGTH = 160

# Prompt budgets
README_EXCERPT_CHARS = 2000
CODE_EXAMPLES_CHARS = 1200
EXPORT_SUMMARY_LIMIT = 10
IMPLEMENTATION_PROMPT_CHARS = 600

INSUFFICIENT_CONTEXT_SENTINEL = "INSUFFICIENT_CONTEXT"
NO_MODEL_ERROR = "Gemini API key not configured"
GENERIC_GENERATION_ERROR = "Failed to generate answer"
UNGROUNDED_NOTE = "Generated without grounded context. Verify against official docs before use."


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class SymbolMatch:
    """
    A symbol retrieved for one query.

    ``snippet`` is a short display excerpt; ``implementation`` is the full
    text used for prompt construction.
    """
    name: str
    kind: str
    file_path: str
    snippet: str
    is_exported: bool
    implementation: str = ""
    relevance_score: Optional[int] = None
    jsdoc: Optional[str] = None
    signature: Optional[str] = None

    @classmethod
    def from_source(cls, source: Dict[str, Any]) -> "SymbolMatch":
        """Build a match from a stored symbol (index ``_source`` shape)."""
        implementation = source.get("implementation") or ""
        return cls(
            name=source.get("name", ""),
            kind=source.get("kind", ""),
            file_path=source.get("file_path", ""),
            snippet=implementation[:SNIPPET_LENGTH],
            is_exported=bool(source.get("is_exported", False)),
            implementation=implementation,
            relevance_score=source.get("relevance_score"),
            jsdoc=source.get("jsdoc"),
            signature=source.get("signature"),
        )

    def summary(self) -> Dict[str, Any]:
        """Display fields for search results."""
        return {
            "name": self.name,
            "kind": self.kind,
            "file_path": self.file_path,
            "snippet": self.snippet,
            "is_exported": self.is_exported,
            "relevance_score": self.relevance_score,
        }


@dataclass
class PackageContext:
    """Everything retrieved for one package and query."""
    name: str
    version: str
    symbols: List[SymbolMatch] = field(default_factory=list)
    readme: str = ""
    code_examples: str = ""
    exports: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class AnswerRequest:
    """
    Parameters for answer generation.

    Attributes:
        intent: What the caller wants to accomplish, in plain language
        package_name: npm package to ground the answer in
        search_query: Retrieval query; blank or missing means use ``intent``
        max_snippets: Maximum symbol matches to retrieve
    """
    intent: str
    package_name: str
    search_query: Optional[str] = None
    max_snippets: Optional[int] = None

    @property
    def effective_query(self) -> str:
        if self.search_query and self.search_query.strip():
            return self.search_query.strip()
        return self.intent

    @property
    def snippet_limit(self) -> int:
        return self.max_snippets if self.max_snippets is not None else DEFAULT_MAX_SNIPPETS


@dataclass
class Citation:
    """A symbol the answer was grounded in."""
    name: str
    kind: str
    file_path: str
    is_exported: bool
    jsdoc: Optional[str] = None
    signature: Optional[str] = None

    @classmethod
    def from_match(cls, match: SymbolMatch) -> "Citation":
        return cls(
            name=match.name,
            kind=match.kind,
            file_path=match.file_path,
            is_exported=match.is_exported,
            jsdoc=match.jsdoc,
            signature=match.signature,
        )


@dataclass
class AnswerResponse:
    """Successful answer."""
    intent: str
    package_name: str
    search_query: str
    code: str
    context: List[Citation]
    grounded: bool
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.note is None:
            data.pop("note")
        return data


@dataclass
class PackageSearchHit:
    """One package returned by corpus search, with its best symbol matches."""
    id: str
    score: float
    name: str
    version: str
    description: str = ""
    keywords: List[str] = field(default_factory=list)
    total_symbols: int = 0
    context: List[SymbolMatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "score": self.score,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "keywords": self.keywords,
            "total_symbols": self.total_symbols,
            "context": [match.summary() for match in self.context],
        }


class ErrorClass(str, Enum):
    """How a failed generation attempt is handled."""
    RETRYABLE = "retryable"
    FATAL = "fatal"


# ============================================================================
# Custom Exceptions
# ============================================================================

class UngroundedRejection(Exception):
    """
    Raised when no grounding context exists and ungrounded answers are off.

    Attributes:
        package_name: Package that was searched
        query: Query that matched nothing
    """
    def __init__(self, package_name: str, query: str):
        self.package_name = package_name
        self.query = query
        super().__init__(f'No relevant symbols found for {package_name} with query "{query}"')


class GenerationError(Exception):
    """Raised when every configured model failed."""
