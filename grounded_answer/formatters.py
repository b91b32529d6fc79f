"""
Response formatting for answers and package search results.

Markdown for human-readable MCP output, JSON for structured clients.
"""

import json
from typing import Any, Dict, List, Optional

from .matcher import PackageMatch
from .types import PackageSearchHit

SNIPPET_PREVIEW_CHARS = 160


def format_answer_markdown(answer: Dict[str, Any], match: Optional[PackageMatch] = None) -> str:
    """
    Format an answer dict (``AnswerResponse.to_dict()``) as markdown.

    Args:
        answer: Successful answer payload
        match: How the package name was resolved, if it was fuzzy-matched
    """
    lines = [f"# {answer['package_name']}", ""]

    if match is not None and match.tier == "fuzzy":
        lines.append(f"*Matched package `{match.name}` (score {match.score:.0f})*")
        lines.append("")

    lines.append(f"**Intent:** {answer['intent']}")
    lines.append(f"**Search query:** {answer['search_query']}")
    lines.append(f"**Grounded:** {'yes' if answer['grounded'] else 'no'}")
    if answer.get("note"):
        lines.append("")
        lines.append(f"> {answer['note']}")

    lines.append("")
    lines.append(answer["code"])

    if answer["context"]:
        lines.append("")
        lines.append("## Grounded In")
        lines.append("")
        for citation in answer["context"]:
            visibility = "exported" if citation["is_exported"] else "internal"
            lines.append(f"- `{citation['name']}` ({citation['kind']}, {visibility}) in `{citation['file_path']}`")

    return "\n".join(lines)


def format_search_markdown(query: str, hits: List[PackageSearchHit]) -> str:
    """Format package search hits as markdown."""
    if not hits:
        return f"No packages found for '{query}'."

    lines = [f"# Packages matching '{query}'", ""]
    for i, hit in enumerate(hits, 1):
        lines.append(f"## {i}. {hit.name}@{hit.version}")
        if hit.description:
            lines.append(hit.description)
        details = [f"score {hit.score:.3f}", f"{hit.total_symbols} symbols"]
        if hit.keywords:
            details.append("keywords: " + ", ".join(hit.keywords[:8]))
        lines.append(f"*{' | '.join(details)}*")

        for match in hit.context:
            preview = match.snippet[:SNIPPET_PREVIEW_CHARS].replace("\n", " ")
            lines.append(f"- `{match.name}` ({match.kind}) `{match.file_path}`: {preview}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_search_json(query: str, hits: List[PackageSearchHit]) -> str:
    return json.dumps(
        {"query": query, "results": [hit.to_dict() for hit in hits]},
        indent=2,
    )
