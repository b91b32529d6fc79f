"""
Package source code fetching.

Tries three strategies in priority order and keeps the first that yields at
least one file:

1. GitHub tree API (when the package declares a GitHub repository)
2. npm registry tarball
3. unpkg CDN probing of common entry points

Strategies run strictly one after another; file downloads inside a strategy
run concurrently. All I/O is async via httpx.
"""

import asyncio
import base64
import io
import logging
import os
import re
import shutil
import tarfile
import tempfile
from typing import Dict, List, Optional, Tuple

import httpx

from cascade import first_result

from .models import (
    CDN_PROBE_PATHS,
    DEFAULT_BRANCHES,
    GITHUB_API_BASE,
    MAX_FILE_SIZE,
    MAX_SOURCE_FILES,
    NPM_REGISTRY_BASE,
    UNPKG_BASE,
    RegistryAPIError,
    SourceCodeResult,
    SourceFile,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds

SOURCE_FILE_PATTERN = re.compile(r"\.(ts|js|tsx|jsx)$")
SOURCE_DIRECTORIES = re.compile(r"(^|/)(src|lib|dist)/")
ADDITIONAL_DIRECTORIES = re.compile(r"(^|/)(types?|definitions?|esm|cjs)/")
TOP_LEVEL_FILE = re.compile(r"^[^/]+\.(ts|js|tsx|jsx)$")
EXCLUDE_PATTERN = re.compile(r"\.(test|spec|stories)\.(ts|js|tsx|jsx)$")

SKIPPED_DIRECTORIES = {"node_modules", "coverage", ".git"}

_GITHUB_REPO_PATTERNS = (
    re.compile(r"github\.com[/:]([\w.-]+)/([\w.-]+)", re.IGNORECASE),
    re.compile(r"^github:([\w.-]+)/([\w.-]+)", re.IGNORECASE),
    re.compile(r"^([\w.-]+)/([\w.-]+)$"),
)


def parse_github_repo(repository_url: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Resolve a package.json repository value to (owner, repo).

    Supports "owner/repo", "github:owner/repo", "git+https://github.com/owner/repo.git",
    "git@github.com:owner/repo.git" and "https://github.com/owner/repo".
    """
    if not repository_url:
        return None

    url = repository_url.strip()
    for pattern in _GITHUB_REPO_PATTERNS:
        match = pattern.search(url)
        if match:
            repo = re.sub(r"\.git$", "", match.group(2))
            return match.group(1), repo

    return None


def is_source_path(path: str) -> bool:
    """Whether a repository/package path looks like hand-written library source."""
    return bool(
        SOURCE_FILE_PATTERN.search(path)
        and not EXCLUDE_PATTERN.search(path)
        and (
            SOURCE_DIRECTORIES.search(path)
            or ADDITIONAL_DIRECTORIES.search(path)
            or TOP_LEVEL_FILE.search(path)
        )
    )


def _make_source_file(path: str, content: str) -> SourceFile:
    return SourceFile(path=path, content=content, size=len(content.encode("utf-8")))


def _make_result(files: List[SourceFile], strategy: str) -> SourceCodeResult:
    return SourceCodeResult(
        files=files,
        strategy=strategy,
        total_size=sum(f.size for f in files),
    )


def _raise_for_status(response: httpx.Response, what: str) -> None:
    if response.status_code != 200:
        raise RegistryAPIError(response.status_code, f"Failed to fetch {what}")


# ============================================================================
# Strategies
# ============================================================================

class GitHubStrategy:
    """Lists the default branch tree and downloads matching blobs."""

    name = "github"

    def __init__(self, client: httpx.AsyncClient, token: Optional[str] = None):
        self._client = client
        self._headers = {"Accept": "application/vnd.github+json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    async def attempt(self, repository_url: str) -> Optional[SourceCodeResult]:
        repo_info = parse_github_repo(repository_url)
        if not repo_info:
            logger.debug("Not a GitHub repository: %s", repository_url)
            return None

        owner, repo = repo_info
        logger.info("Fetching from GitHub: %s/%s", owner, repo)

        tree_sha = await self._resolve_tree(owner, repo)
        response = await self._client.get(
            f"{GITHUB_API_BASE}/repos/{owner}/{repo}/git/trees/{tree_sha}",
            params={"recursive": "1"},
            headers=self._headers,
        )
        _raise_for_status(response, f"tree for {owner}/{repo}")

        relevant = [
            item for item in response.json().get("tree", [])
            if item.get("type") == "blob"
            and item.get("path")
            and is_source_path(item["path"])
            and (item.get("size") or 0) < MAX_FILE_SIZE
        ]
        logger.info("Found %d source files", len(relevant))

        downloads = await asyncio.gather(*(
            self._fetch_blob(owner, repo, item)
            for item in relevant[:MAX_SOURCE_FILES]
        ))
        files = [f for f in downloads if f is not None]

        result = _make_result(files, self.name)
        logger.info("Downloaded %d files (%dKB)", len(files), result.total_size // 1024)
        return result

    async def _resolve_tree(self, owner: str, repo: str) -> str:
        """Tree SHA of the first existing default branch."""
        last_status = 0
        for branch in DEFAULT_BRANCHES:
            response = await self._client.get(
                f"{GITHUB_API_BASE}/repos/{owner}/{repo}/branches/{branch}",
                headers=self._headers,
            )
            if response.status_code == 200:
                return response.json()["commit"]["commit"]["tree"]["sha"]
            last_status = response.status_code

        raise RegistryAPIError(
            last_status,
            f"No {' or '.join(DEFAULT_BRANCHES)} branch in {owner}/{repo}",
        )

    async def _fetch_blob(self, owner: str, repo: str, item: Dict) -> Optional[SourceFile]:
        try:
            response = await self._client.get(
                f"{GITHUB_API_BASE}/repos/{owner}/{repo}/git/blobs/{item['sha']}",
                headers=self._headers,
            )
            _raise_for_status(response, item["path"])
            content = base64.b64decode(response.json()["content"]).decode("utf-8", errors="replace")
        except (httpx.HTTPError, RegistryAPIError, KeyError, ValueError) as e:
            logger.warning("Failed to fetch %s: %s", item["path"], e)
            return None

        return _make_source_file(item["path"], content)


class TarballStrategy:
    """Downloads the registry tarball and walks its extracted tree."""

    name = "tarball"

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def attempt(self, package_name: str, version: str) -> Optional[SourceCodeResult]:
        logger.info("Fetching tarball from npm registry")

        semver = version[1:] if version.startswith("v") else version
        response = await self._client.get(f"{NPM_REGISTRY_BASE}/{package_name}/{semver}")
        _raise_for_status(response, "metadata")

        tarball_url = (response.json().get("dist") or {}).get("tarball")
        if not tarball_url:
            raise RegistryAPIError(response.status_code, "No tarball URL found")

        tarball = await self._client.get(tarball_url)
        _raise_for_status(tarball, "tarball")

        files = await asyncio.to_thread(extract_source_files, tarball.content)
        result = _make_result(files, self.name)
        logger.info("Extracted %d source files (%dKB)", len(files), result.total_size // 1024)
        return result


def extract_source_files(tarball: bytes) -> List[SourceFile]:
    """
    Extract a package tarball into a scratch directory and read its sources.

    The scratch directory is removed before returning, on success or failure.
    """
    scratch = tempfile.mkdtemp(prefix="npm-intel-")
    try:
        with tarfile.open(fileobj=io.BytesIO(tarball), mode="r:gz") as archive:
            archive.extractall(scratch, members=_safe_members(archive, scratch))

        package_dir = os.path.join(scratch, "package")
        if not os.path.isdir(package_dir):
            return []
        return _read_source_tree(package_dir)
    finally:
        shutil.rmtree(scratch, ignore_errors=True)


def _safe_members(archive: tarfile.TarFile, root: str) -> List[tarfile.TarInfo]:
    """Regular files and directories that stay inside ``root``."""
    root = os.path.realpath(root)
    members = []
    for member in archive.getmembers():
        if not (member.isfile() or member.isdir()):
            continue
        target = os.path.realpath(os.path.join(root, member.name))
        if os.path.commonpath([root, target]) != root:
            logger.warning("Skipping tarball entry outside package: %s", member.name)
            continue
        members.append(member)
    return members


def _read_source_tree(package_dir: str) -> List[SourceFile]:
    files: List[SourceFile] = []

    for current, dirs, names in os.walk(package_dir):
        dirs[:] = sorted(d for d in dirs if d not in SKIPPED_DIRECTORIES)
        for filename in sorted(names):
            full_path = os.path.join(current, filename)
            relative = os.path.relpath(full_path, package_dir).replace(os.sep, "/")
            if not is_source_path(relative):
                continue
            try:
                with open(full_path, "r", encoding="utf-8") as handle:
                    content = handle.read()
            except (OSError, UnicodeDecodeError) as e:
                logger.debug("Skipping unreadable file %s: %s", relative, e)
                continue

            source_file = _make_source_file(relative, content)
            if source_file.size < MAX_FILE_SIZE:
                files.append(source_file)

    return files


class UnpkgStrategy:
    """Probes well-known entry points directly on the CDN."""

    name = "unpkg"

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def attempt(self, package_name: str, version: str) -> Optional[SourceCodeResult]:
        logger.info("Fetching from unpkg CDN")

        probes = await asyncio.gather(*(
            self._probe(package_name, version, path) for path in CDN_PROBE_PATHS
        ))
        files = [f for f in probes if f is not None]
        if not files:
            return None

        logger.info("Found %d files on unpkg", len(files))
        return _make_result(files, self.name)

    async def _probe(self, package_name: str, version: str, path: str) -> Optional[SourceFile]:
        try:
            response = await self._client.get(f"{UNPKG_BASE}/{package_name}@{version}{path}")
        except httpx.HTTPError:
            return None
        if response.status_code != 200:
            return None
        return _make_source_file(path, response.text)


# ============================================================================
# Fetcher
# ============================================================================

class SourceFetcher:
    """
    Fetches a bounded set of source files for a package version.

    Owns an ``httpx.AsyncClient`` unless one is injected.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        github_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self.github = GitHubStrategy(self._client, github_token)
        self.tarball = TarballStrategy(self._client)
        self.unpkg = UnpkgStrategy(self._client)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(
        self,
        package_name: str,
        version: str,
        repository_url: Optional[str] = None,
    ) -> Optional[SourceCodeResult]:
        """
        Fetch source files, trying each strategy until one yields files.

        Args:
            package_name: npm package name, e.g. "zod" or "@upstash/redis"
            version: Exact version (or dist-tag) to fetch
            repository_url: package.json repository URL, if any

        Returns:
            The first non-empty SourceCodeResult, or None if all strategies failed
        """
        attempts = []
        if repository_url:
            attempts.append(("GitHub fetch", lambda: self.github.attempt(repository_url)))
        attempts.append(("Tarball fetch", lambda: self.tarball.attempt(package_name, version)))
        attempts.append(("unpkg fetch", lambda: self.unpkg.attempt(package_name, version)))

        result = await first_result(attempts, accept=lambda r: bool(r.files))
        if result is None:
            logger.warning("Could not fetch source code for %s@%s from any source", package_name, version)
        return result
