"""
Internal types for the package ingestion pipeline.

Plain dataclasses passed between the fetcher, parser, scorer and indexer.
``to_document()`` methods produce the snake_case shape stored in the index.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional


# ============================================================================
# Configurable Constants
# ============================================================================

UNPKG_BASE = "https://unpkg.com"
NPM_REGISTRY_BASE = "https://registry.npmjs.org"
GITHUB_API_BASE = "https://api.github.com"

# Source fetching limits
MAX_SOURCE_FILES = 20
MAX_FILE_SIZE = 100_000  # bytes
DEFAULT_BRANCHES = ("main", "master")
CDN_PROBE_PATHS = (
    "/src/index.ts",
    "/src/index.js",
    "/src/client.ts",
    "/src/main.ts",
    "/lib/index.js",
    "/lib/main.js",
)

# Parser
JSDOC_LOOKBACK_CHARS = 500

# Symbol filter thresholds
MIN_IMPLEMENTATION_LENGTH = 50
MAX_IMPLEMENTATION_LENGTH = 10_000

SYMBOL_SEPARATOR = "\n\n---\n\n"


SymbolKind = Literal["function", "class", "interface", "type", "const", "variable"]
SourceStrategy = Literal["github", "tarball", "unpkg"]


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class ParsedSymbol:
    """
    One declaration discovered in a source file.

    Attributes:
        kind: Declaration kind
        name: Declared identifier
        signature: Short synthetic declaration, e.g. "function add(a: number): number"
        implementation: Verbatim source text of the whole declaration
        file_path: Path of the file inside the package or repository
        start_line: 1-based first line of the declaration
        end_line: 1-based last line of the declaration
        is_exported: Whether the declaration carries an export modifier
        jsdoc: Doc comment immediately preceding the declaration
        parameters: "name: type" per parameter (function-like kinds only)
        return_type: Annotated return type, "any" when missing (function-like kinds only)
        relevance_score: Ranking score assigned at indexing time
    """
    kind: SymbolKind
    name: str
    signature: str
    implementation: str
    file_path: str
    start_line: int
    end_line: int
    is_exported: bool = False
    jsdoc: Optional[str] = None
    parameters: Optional[List[str]] = None
    return_type: Optional[str] = None
    relevance_score: int = 0

    def to_document(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "signature": self.signature,
            "implementation": self.implementation,
            "jsdoc": self.jsdoc,
            "file_path": self.file_path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "is_exported": self.is_exported,
            "parameters": self.parameters,
            "return_type": self.return_type,
            "relevance_score": self.relevance_score,
        }


@dataclass
class SourceFile:
    """A fetched source file."""
    path: str
    content: str
    size: int


@dataclass
class SourceCodeResult:
    """Files obtained by one fetch strategy."""
    files: List[SourceFile]
    strategy: SourceStrategy
    total_size: int


@dataclass
class ExportInfo:
    """Legacy export scraped from a type declaration file."""
    kind: str
    name: str
    signature: str
    jsdoc: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "signature": self.signature,
            "jsdoc": self.jsdoc,
        }


@dataclass
class PackageData:
    """
    Registry data for one package version.

    Attributes:
        package_json: Parsed package.json
        readme: README text ("" when missing)
        dts: Type declaration text ("" when missing)
    """
    package_json: Dict[str, Any]
    readme: str = ""
    dts: str = ""

    @property
    def repository_url(self) -> Optional[str]:
        """Repository URL from either the string or ``{type, url}`` form."""
        repository = self.package_json.get("repository")
        if isinstance(repository, str):
            return repository or None
        if isinstance(repository, dict):
            return repository.get("url") or None
        return None


@dataclass
class PackageDocument:
    """
    The retrieval document for one ``name@version``.

    Invariants: ``total_symbols == len(symbols)``; a ``source_strategy`` of
    "none" means no symbols.
    """
    name: str
    version: str
    description: str = ""
    keywords: List[str] = field(default_factory=list)
    readme_content: str = ""
    repository_url: Optional[str] = None
    source_strategy: str = "none"
    exports: List[ExportInfo] = field(default_factory=list)
    symbols: List[ParsedSymbol] = field(default_factory=list)
    source_code_content: str = ""
    code_examples: str = ""
    total_source_files: int = 0
    total_source_size: int = 0
    indexed_at: Optional[str] = None

    @property
    def doc_id(self) -> str:
        return f"{self.name}@{self.version}"

    @property
    def total_symbols(self) -> int:
        return len(self.symbols)

    def to_document(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "keywords": list(self.keywords),
            "readme_content": self.readme_content,
            "repository_url": self.repository_url,
            "source_strategy": self.source_strategy,
            "exports": [export.to_document() for export in self.exports],
            "symbols": [symbol.to_document() for symbol in self.symbols],
            "source_code_content": self.source_code_content,
            "code_examples": self.code_examples,
            "total_symbols": self.total_symbols,
            "total_source_files": self.total_source_files,
            "total_source_size": self.total_source_size,
            "indexed_at": self.indexed_at,
        }


@dataclass
class IngestionSummary:
    """Outcome of a batch ingestion run."""
    successful: int = 0
    failed: int = 0
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.successful + self.failed


# ============================================================================
# Custom Exceptions
# ============================================================================

class RegistryAPIError(Exception):
    """
    Raised when the package registry or CDN returns an error.

    Attributes:
        status_code: HTTP status code (0 for transport failures)
        message: Error message
    """
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Registry error ({status_code}): {message}")


class IngestionError(Exception):
    """
    Raised when a package cannot be ingested.

    Attributes:
        package: Package name being ingested
        step: Pipeline step that failed ("metadata", "index", ...)
        cause: The underlying exception
    """
    def __init__(self, package: str, step: str, cause: Exception):
        self.package = package
        self.step = step
        self.cause = cause
        super().__init__(f"Failed to ingest {package} at step '{step}': {cause}")
