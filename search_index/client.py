"""
Elasticsearch REST client with httpx.

Handles communication with the search cluster that stores package documents:
- Full-document upsert keyed by ``name@version``
- Query DSL and retriever searches (lexical, semantic, nested, RRF)
- Get-by-id
- Index creation with the package mapping

All I/O is async via httpx. One client (and its connection pool) is created
per process and passed to the components that need it.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from .models import (
    DEFAULT_INDEX_NAME,
    DEFAULT_TIMEOUT,
    PACKAGE_INDEX_MAPPINGS,
    SearchIndexError,
)

logger = logging.getLogger(__name__)


class SearchIndexClient:
    """
    Async client for the package search index.

    Owns an ``httpx.AsyncClient`` unless one is injected, in which case the
    caller keeps ownership and ``aclose()`` leaves it open.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        index_name: str = DEFAULT_INDEX_NAME,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the search index client.

        Args:
            endpoint: Cluster URL, e.g. "https://my-deployment.es.io:443"
            api_key: Optional API key sent as ``Authorization: ApiKey ...``
            index_name: Name of the package index
            http_client: Optional shared httpx client (useful for tests)
            timeout: Request timeout in seconds for the owned client
        """
        self.index_name = index_name
        self._endpoint = endpoint.rstrip("/")
        self._headers = {"Content-Type": "application/json"}

        if api_key:
            self._headers["Authorization"] = f"ApiKey {api_key}"

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "SearchIndexClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool if this client created it."""
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def index_document(self, doc_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write a document, replacing any existing one with the same id.

        Args:
            doc_id: Document id, e.g. "zod@3.23.8" or "@upstash/redis@1.34.0"
            document: Full document body

        Returns:
            The cluster's write acknowledgement
        """
        return await self._request("PUT", self._doc_path(doc_id), json=document)

    async def get_document(
        self,
        doc_id: str,
        source_includes: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """
        Fetch a document's ``_source`` by id.

        Raises:
            SearchIndexError: If the document does not exist or the call fails
        """
        params = {}
        if source_includes:
            params["_source_includes"] = ",".join(source_includes)

        data = await self._request("GET", self._doc_path(doc_id), params=params)
        if not data.get("found", True):
            raise SearchIndexError(404, f"Document '{doc_id}' not found")
        return data.get("_source") or {}

    async def search(self, body: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Run a search request and return the raw hit list.

        Args:
            body: Search request body (query DSL or retriever)

        Returns:
            ``hits.hits`` from the response (possibly empty)
        """
        data = await self._request("POST", f"/{self.index_name}/_search", json=body)
        return data.get("hits", {}).get("hits", []) or []

    async def list_packages(self, size: int = 500) -> List[Dict[str, Any]]:
        """Return summary sources for every indexed package document."""
        hits = await self.search({
            "size": size,
            "query": {"match_all": {}},
            "_source": [
                "name",
                "version",
                "description",
                "total_symbols",
                "source_strategy",
                "indexed_at",
            ],
        })
        return [hit.get("_source") or {} for hit in hits]

    # ------------------------------------------------------------------
    # Index management
    # ------------------------------------------------------------------

    async def create_index(self, recreate: bool = False) -> None:
        """
        Create the package index with its mapping.

        Args:
            recreate: Delete the index first if it already exists
        """
        response = await self._client.head(
            f"{self._endpoint}/{self.index_name}",
            headers=self._headers,
        )
        if response.status_code == 200:
            if not recreate:
                logger.info("Index '%s' already exists", self.index_name)
                return
            logger.warning("Deleting existing index '%s'", self.index_name)
            await self._request("DELETE", f"/{self.index_name}")

        await self._request(
            "PUT",
            f"/{self.index_name}",
            json={"mappings": PACKAGE_INDEX_MAPPINGS},
        )
        logger.info("Created index '%s'", self.index_name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _doc_path(self, doc_id: str) -> str:
        return f"/{self.index_name}/_doc/{quote(doc_id, safe='')}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(
                method,
                f"{self._endpoint}{path}",
                headers=self._headers,
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise SearchIndexError(0, str(e)) from e

        if response.status_code >= 400:
            raise SearchIndexError(
                response.status_code,
                self._extract_error_message(response),
            )

        if not response.content:
            return {}
        return response.json()

    def _extract_error_message(self, response: httpx.Response) -> str:
        """Extract the root-cause reason from an error response."""
        try:
            data = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"

        error = data.get("error")
        if isinstance(error, dict):
            root_causes = error.get("root_cause") or []
            if root_causes and root_causes[0].get("reason"):
                return root_causes[0]["reason"]
            return error.get("reason", response.text)
        if isinstance(error, str):
            return error
        if data.get("found") is False:
            return "document not found"
        return response.text or f"HTTP {response.status_code}"
