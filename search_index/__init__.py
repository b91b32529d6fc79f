"""
Search Index - Elasticsearch access for package documents.

Shared by the ingestion pipeline (writes) and the answer pipeline (reads).
"""

from .client import SearchIndexClient
from .models import (
    DEFAULT_INDEX_NAME,
    PACKAGE_INDEX_MAPPINGS,
    SearchIndexError,
)

__all__ = [
    'SearchIndexClient',
    'SearchIndexError',
    'DEFAULT_INDEX_NAME',
    'PACKAGE_INDEX_MAPPINGS',
]
