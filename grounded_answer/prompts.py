"""
Prompt construction for answer generation.

Grounded prompts carry only retrieved context and instruct the model to
answer with the INSUFFICIENT_CONTEXT sentinel rather than invent APIs.
Ungrounded prompts carry no context and ask the model to say so.
"""

from typing import Any, Dict, List

from .types import (
    CODE_EXAMPLES_CHARS,
    EXPORT_SUMMARY_LIMIT,
    IMPLEMENTATION_PROMPT_CHARS,
    INSUFFICIENT_CONTEXT_SENTINEL,
    README_EXCERPT_CHARS,
    PackageContext,
    SymbolMatch,
)


def format_symbol_block(symbol: SymbolMatch) -> str:
    """One retrieved symbol as a commented source block."""
    visibility = "Public API" if symbol.is_exported else "Internal"
    lines = [
        f"// {visibility} {symbol.kind} {symbol.name}",
        f"// File: {symbol.file_path}",
        symbol.jsdoc or "",
        symbol.signature or "",
        (symbol.implementation or "")[:IMPLEMENTATION_PROMPT_CHARS],
    ]
    return "\n".join(line for line in lines if line)


def format_export_summary(export: Dict[str, Any]) -> str:
    summary = f"{export.get('kind', '')} {export.get('name', '')}"
    if export.get("signature"):
        summary += f" - {export['signature']}"
    if export.get("jsdoc"):
        summary += f"\n{export['jsdoc']}"
    return summary


def build_grounded_prompt(context: PackageContext, intent: str) -> str:
    """
    Prompt restricted to the retrieved package context.

    Args:
        context: Retrieved package context with at least one symbol
        intent: The caller's stated goal
    """
    symbols_context = "\n\n".join(format_symbol_block(s) for s in context.symbols)
    exports: List[Dict[str, Any]] = context.exports[:EXPORT_SUMMARY_LIMIT]
    exports_context = "\n\n".join(format_export_summary(e) for e in exports)
    readme_excerpt = context.readme[:README_EXCERPT_CHARS]
    code_examples = context.code_examples[:CODE_EXAMPLES_CHARS]

    return f"""You are a TypeScript assistant grounded in the provided context.

PACKAGE: {context.name}@{context.version}
INTENT: {intent}

README EXCERPT:
{readme_excerpt or "(no README data provided)"}

CODE EXAMPLES:
{code_examples or "(no code examples provided)"}

EXPORTED API SURVEY:
{exports_context or "(no export metadata available)"}

AVAILABLE IMPLEMENTATIONS:
{symbols_context or "(no implementation snippets available)"}

Write a concise explanation of the approach (2-3 sentences) followed by a TypeScript example that satisfies the intent using ONLY the APIs shown above.
If the context is insufficient, reply with "{INSUFFICIENT_CONTEXT_SENTINEL}: <reason>" instead of inventing APIs.
Include brief inline comments if it clarifies the flow."""


def build_ungrounded_prompt(package_name: str, intent: str) -> str:
    """Best-effort prompt used when no context was found and fallback is allowed."""
    return f"""You are a TypeScript assistant.

PACKAGE: {package_name}
INTENT: {intent}

No grounded source snippets were available. Produce the best-effort TypeScript example based on your general knowledge.
1. Begin with a short explanation (2-3 sentences) describing the approach and state that the response is ungrounded.
2. Provide the TypeScript example in a code fence.
3. Add inline comments to highlight important steps.
4. Do not fabricate APIs that are very unlikely to exist; prefer idiomatic usage."""
