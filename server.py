#!/usr/bin/env python3
"""
npm Intel MCP Server

An MCP server answering "how do I X with package Y" from real package source.
Enables AI agents to get grounded TypeScript answers, search the indexed
package corpus, and refresh a package's index document.
"""

import json
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import List, Literal, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import BaseModel, ConfigDict, Field

from grounded_answer import (
    PackageMatch,
    PackageMatcher,
    PackageNotFoundError,
    answer_question,
    build_models,
    search_packages as search_package_index,
)
from grounded_answer.formatters import (
    format_answer_markdown,
    format_search_json,
    format_search_markdown,
)
from package_ingest import index_packages
from search_index import SearchIndexClient, SearchIndexError
from settings import ConfigurationError, Settings

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("npm-intel")


@asynccontextmanager
async def server_lifespan(server: FastMCP):
    """Release the shared search index connections on shutdown."""
    try:
        yield
    finally:
        await close_index()


# Initialize MCP server
mcp = FastMCP("npm-intel", lifespan=server_lifespan)

# Constants
CHARACTER_LIMIT = 25000  # Maximum characters for tool responses
NPM_NAME_PATTERN = r"^(@[a-zA-Z0-9._-]+/)?[a-zA-Z0-9][a-zA-Z0-9._-]*$"


# ============================================================================
# Input Models (Pydantic v2)
# ============================================================================

class AnswerInput(BaseModel):
    """Input model for grounded package answers."""
    model_config = ConfigDict(extra="forbid")

    package: str = Field(
        ...,
        description="npm package name or best guess. Examples: 'zod', '@upstash/ratelimit', 'upstash ratelimit'",
        min_length=1,
        max_length=214
    )
    intent: str = Field(
        ...,
        description="What you want to accomplish. Example: 'rate limit an API route to 10 requests per minute'",
        min_length=3,
        max_length=1000
    )
    search_query: Optional[str] = Field(
        default=None,
        description="Retrieval query for the package source. Defaults to the intent",
        max_length=500
    )
    max_snippets: int = Field(
        default=3,
        description="Number of source symbols to ground the answer in (1-10)",
        ge=1,
        le=10
    )
    format: Literal["markdown", "json"] = Field(
        default="markdown",
        description="Response format: 'markdown' for human-readable or 'json' for structured data"
    )


class SearchInput(BaseModel):
    """Input model for searching the indexed package corpus."""
    model_config = ConfigDict(extra="forbid")

    query: str = Field(
        ...,
        description="What the package should do. Examples: 'schema validation', 'serverless redis client'",
        min_length=2,
        max_length=500
    )
    limit: int = Field(
        default=5,
        description="Maximum packages to return (1-20)",
        ge=1,
        le=20
    )
    format: Literal["markdown", "json"] = Field(
        default="markdown",
        description="Response format: 'markdown' for human-readable or 'json' for structured data"
    )


class ReindexInput(BaseModel):
    """Input model for re-ingesting one package."""
    model_config = ConfigDict(extra="forbid")

    package: str = Field(
        ...,
        description="Exact npm package name. Examples: 'zod', '@upstash/redis'",
        min_length=1,
        max_length=214,
        pattern=NPM_NAME_PATTERN
    )


# ============================================================================
# Shared Utilities
# ============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings read once per process."""
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_index() -> SearchIndexClient:
    """Search index client shared by every tool call."""
    settings = get_settings()
    return SearchIndexClient(
        settings.require_index(),
        api_key=settings.elastic_api_key,
        index_name=settings.elastic_index,
        timeout=settings.http_timeout,
    )


async def close_index() -> None:
    """Close the cached index client, if one was built, and forget it."""
    if get_index.cache_info().currsize:
        await get_index().aclose()
    get_index.cache_clear()


@lru_cache(maxsize=1)
def get_models():
    return build_models(get_settings())


def truncate_response(content: str, limit: int = CHARACTER_LIMIT) -> str:
    """
    Truncate response content if it exceeds character limit.

    Args:
        content: The content to potentially truncate
        limit: Maximum character limit

    Returns:
        Truncated content with informative message if truncated
    """
    if len(content) <= limit:
        return content

    truncated = content[:limit]
    return f"{truncated}\n\n[... Content truncated at {limit} characters. Use a narrower query or fewer snippets ...]"


def format_error(error: Exception, context: str) -> str:
    """
    Format error message for LLM consumption with actionable guidance.

    Args:
        error: The exception that occurred
        context: Context about what operation failed

    Returns:
        Human-readable error message with suggested next steps
    """
    if isinstance(error, PackageNotFoundError):
        error_msg = f"Error: Package '{error.target}' is not indexed.\n\n"
        if error.candidates:
            error_msg += "Closest indexed packages:\n"
            error_msg += "\n".join(f"  - {name}" for name in error.candidates)
            error_msg += "\n\nSuggestion: Use one of the package names listed above, or index it with reindex_package."
        else:
            error_msg += "Suggestion: Index it first with reindex_package."
        return error_msg

    if isinstance(error, ConfigurationError):
        return f"Error during {context}: {error}\n\nSuggestion: Check the server's environment variables"

    error_msg = f"Error during {context}: {str(error)}"

    lowered = str(error).lower()
    if isinstance(error, SearchIndexError) and error.status_code in (401, 403):
        error_msg += "\n\nSuggestion: Verify ELASTIC_API_KEY environment variable is set correctly"
    elif "connection" in lowered or "timeout" in lowered:
        error_msg += "\n\nSuggestion: Check the Elasticsearch endpoint is reachable and try again"
    elif "api key" in lowered:
        error_msg += "\n\nSuggestion: Verify GEMINI_API_KEY environment variable is set correctly"
    elif "no relevant symbols" in lowered:
        error_msg += "\n\nSuggestion: Try a search_query closer to the package's function or type names"

    return error_msg


async def resolve_package(index: SearchIndexClient, target: str, floor: int) -> PackageMatch:
    """
    Resolve a package guess against the indexed package names.

    Falls back to the guess itself when the index cannot list packages.

    Raises:
        PackageNotFoundError: If no indexed name is a confident match
    """
    try:
        indexed = await index.list_packages()
    except SearchIndexError as e:
        logger.warning("Could not list indexed packages: %s", e)
        return PackageMatch(name=target, score=0.0, tier="none")

    names: List[str] = [source["name"] for source in indexed if source.get("name")]
    match = PackageMatcher(names, floor=floor).find_best(target)
    if match.name is None:
        raise PackageNotFoundError(target, [name for name, _ in match.candidates])
    return match


# ============================================================================
# Tool Implementations
# ============================================================================

@mcp.tool(
    name="answer_package_question",
    description="""
    Answer "how do I X with package Y" with TypeScript grounded in the package's real source.

    The answer is generated only from symbols retrieved from the indexed
    package source (functions, classes, interfaces, types), and cites them.
    Package names are matched exact → fuzzy, so "Zod" or "upstash ratelimit"
    find the indexed package.

    **Parameters:**
    - `package`: Package name or guess (required)
    - `intent`: What you want to accomplish (required)
    - `search_query`: Retrieval query if different from the intent (optional)
    - `max_snippets`: Number of source symbols to ground in (default 3)

    **Examples:**
    - `answer_package_question(package="zod", intent="validate an email field")`
    - `answer_package_question(package="@upstash/ratelimit", intent="sliding window limiter", search_query="slidingWindow")`

    **Environment Variables:**
    - `ELASTIC_ENDPOINT`, `ELASTIC_API_KEY`: Package index
    - `GEMINI_API_KEY`: Required for answer generation
    """,
    annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=True)
)
async def answer_package_question(input_data: AnswerInput) -> str:
    """
    Generate a grounded code answer for one package.

    Args:
        input_data: AnswerInput with package, intent, search_query, max_snippets, format

    Returns:
        Answer with citations, or an error message
    """
    try:
        settings = get_settings()
        index = get_index()
        match = await resolve_package(index, input_data.package, settings.package_match_floor)

        result = await answer_question(
            intent=input_data.intent,
            package_name=match.name,
            search_query=input_data.search_query,
            max_snippets=input_data.max_snippets,
            settings=settings,
            index=index,
            models=get_models(),
        )

        if "error" in result:
            error_msg = f"Error during answer generation: {result['error']}"
            logger.error(error_msg)
            return error_msg

        if input_data.format == "json":
            return truncate_response(json.dumps(result, indent=2))
        return truncate_response(format_answer_markdown(result, match))

    except Exception as e:
        error_msg = format_error(e, "answering package question")
        logger.error(error_msg)
        return error_msg


@mcp.tool(
    name="search_packages",
    description="""
    Search the indexed npm package corpus by what a package does.

    Combines keyword and semantic README search, and shows the best matching
    source symbols for each package.

    **Examples:**
    - `search_packages(query="schema validation")`
    - `search_packages(query="edge rate limiting", limit=3, format="json")`
    """,
    annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=True)
)
async def search_packages(input_data: SearchInput) -> str:
    """
    Search indexed packages.

    Args:
        input_data: SearchInput with query, limit, format

    Returns:
        Matching packages or an error message
    """
    try:
        hits = await search_package_index(
            input_data.query,
            input_data.limit,
            settings=get_settings(),
            index=get_index(),
        )
        if input_data.format == "json":
            return truncate_response(format_search_json(input_data.query, hits))
        return truncate_response(format_search_markdown(input_data.query, hits))

    except Exception as e:
        error_msg = format_error(e, "searching packages")
        logger.error(error_msg)
        return error_msg


@mcp.tool(
    name="reindex_package",
    description="""
    Fetch, parse and re-index one npm package from its published source.

    Replaces the package's index document for its latest version. Takes a few
    seconds to a minute depending on the package size.
    """,
    annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=True, openWorldHint=True)
)
async def reindex_package(input_data: ReindexInput) -> str:
    """
    Re-ingest one package.

    Args:
        input_data: ReindexInput with the exact package name

    Returns:
        Ingestion status
    """
    try:
        summary = await index_packages(
            [input_data.package],
            settings=get_settings(),
            index=get_index(),
        )
        if summary.failed:
            error_msg = f"Error during reindexing: {summary.failures.get(input_data.package, 'unknown failure')}"
            logger.error(error_msg)
            return error_msg
        return f"Indexed {input_data.package} successfully."

    except Exception as e:
        error_msg = format_error(e, "reindexing package")
        logger.error(error_msg)
        return error_msg


# ============================================================================
# Server Entry Point
# ============================================================================

def main():
    """Run the MCP server using stdio transport."""
    logger.info("Starting npm Intel MCP Server")
    mcp.run()


if __name__ == "__main__":
    main()
