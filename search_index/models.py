"""
Constants, mapping and errors for the package search index.

The index holds one document per ``name@version``. Fields typed as
``semantic_text`` are embedded by the cluster's inference endpoint on write;
nothing in this repository computes embeddings itself.
"""

from typing import Any, Dict


# ============================================================================
# Constants
# ============================================================================

DEFAULT_INDEX_NAME = "npm-packages"
DEFAULT_TIMEOUT = 30.0  # seconds
INFERENCE_ID = "gemini-embeddings"


def _keyword() -> Dict[str, str]:
    return {"type": "keyword"}


def _text() -> Dict[str, str]:
    return {"type": "text"}


def _integer() -> Dict[str, str]:
    return {"type": "integer"}


PACKAGE_INDEX_MAPPINGS: Dict[str, Any] = {
    "properties": {
        "name": _keyword(),
        "version": _keyword(),
        "description": _text(),
        "keywords": _keyword(),
        "readme_content": {"type": "semantic_text", "inference_id": INFERENCE_ID},
        "repository_url": _keyword(),
        "source_strategy": _keyword(),
        "indexed_at": {"type": "date"},
        # Legacy exports scraped from the type declaration file
        "exports": {
            "type": "nested",
            "properties": {
                "kind": _keyword(),
                "name": _keyword(),
                "signature": _text(),
                "jsdoc": _text(),
            },
        },
        # Parsed source symbols with full implementations
        "symbols": {
            "type": "nested",
            "properties": {
                "kind": _keyword(),
                "name": _keyword(),
                "signature": _text(),
                "implementation": _text(),
                "jsdoc": _text(),
                "file_path": _keyword(),
                "start_line": _integer(),
                "end_line": _integer(),
                "is_exported": {"type": "boolean"},
                "parameters": _text(),
                "return_type": _text(),
                "relevance_score": _integer(),
            },
        },
        "source_code_content": {"type": "semantic_text", "inference_id": INFERENCE_ID},
        "code_examples": _text(),
        "total_symbols": _integer(),
        "total_source_files": _integer(),
        "total_source_size": _integer(),
    }
}


# ============================================================================
# Custom Exceptions
# ============================================================================

class SearchIndexError(Exception):
    """
    Raised when the search cluster returns an error.

    Attributes:
        status_code: HTTP status code (0 for transport failures)
        message: Error reason reported by the cluster
    """
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Search index error ({status_code}): {message}")
