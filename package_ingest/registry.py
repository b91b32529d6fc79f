"""
Package metadata retrieval from the unpkg CDN.

Fetches package.json, README.md and the bundled type declaration file for
one package version, plus the pure helpers that turn them into index
fields (legacy exports, README code examples).
"""

import asyncio
import logging
import re
from typing import List, Optional

import httpx

from .models import (
    UNPKG_BASE,
    ExportInfo,
    PackageData,
    RegistryAPIError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds
DTS_PATH = "dist/index.d.ts"

_EXPORT_PATTERN = re.compile(r"export\s+(function|class|interface|type|const|enum)\s+([A-Za-z0-9_$]+)")
_JSDOC_PATTERN = re.compile(r"/\*\*[\s\S]*?\*/")
_FENCE_PATTERN = re.compile(r"```(?:ts|js|typescript|javascript)?\n([\s\S]*?)```")


class RegistryClient:
    """
    Async client for package files served by the CDN.

    Owns an ``httpx.AsyncClient`` unless one is injected.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = UNPKG_BASE,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_package(self, package_name: str, version: str = "latest") -> PackageData:
        """
        Fetch package.json, README and type declarations concurrently.

        Only package.json is required; a missing README or declaration file
        yields empty text.

        Raises:
            RegistryAPIError: If package.json cannot be fetched
        """
        base = f"{self._base_url}/{package_name}@{version}"
        logger.info("Fetching %s@%s", package_name, version)

        package_json, readme, dts = await asyncio.gather(
            self._get_json(f"{base}/package.json"),
            self._get_optional_text(f"{base}/README.md"),
            self._get_optional_text(f"{base}/{DTS_PATH}"),
        )

        logger.info(
            "package.json ok, README.md: %s, index.d.ts: %s",
            f"{len(readme)} chars" if readme else "not found",
            f"{len(dts)} chars" if dts else "not found",
        )
        return PackageData(package_json=package_json, readme=readme, dts=dts)

    async def _get_json(self, url: str) -> dict:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise RegistryAPIError(0, f"Failed to fetch package.json: {e}") from e

        if response.status_code != 200:
            raise RegistryAPIError(
                response.status_code,
                f"Failed to fetch package.json: {response.status_code}",
            )
        return response.json()

    async def _get_optional_text(self, url: str) -> str:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            logger.debug("Optional file %s unavailable: %s", url, e)
            return ""
        return response.text if response.status_code == 200 else ""


# ============================================================================
# Field extraction
# ============================================================================

def extract_exports_simple(dts: Optional[str]) -> List[ExportInfo]:
    """
    Scan a type declaration file for exported declarations.

    The signature is the first six lines (at most 400 characters) starting
    at the export; the doc comment is the last ``/** */`` block within the
    500 characters before it.
    """
    if not dts:
        return []

    exports = []
    for match in _EXPORT_PATTERN.finditer(dts):
        start = match.start()
        snippet = dts[start:start + 400]
        signature = "\n".join(snippet.split("\n")[:6]).strip()

        before = dts[max(0, start - 500):start]
        docs = _JSDOC_PATTERN.findall(before)

        exports.append(ExportInfo(
            kind=match.group(1),
            name=match.group(2),
            signature=signature,
            jsdoc=docs[-1] if docs else None,
        ))

    return exports


def extract_code_blocks(markdown: Optional[str]) -> List[str]:
    """Fenced ts/js code blocks (or untagged ones) from markdown."""
    if not markdown:
        return []
    blocks = (match.group(1).strip() for match in _FENCE_PATTERN.finditer(markdown))
    return [block for block in blocks if block]


def prepare_readme_content(readme: str, code_blocks: List[str]) -> str:
    """README text followed by a code examples section for embedding."""
    if not code_blocks:
        return readme
    return f"{readme}\n\n## Code Examples\n\n" + "\n\n".join(code_blocks)
