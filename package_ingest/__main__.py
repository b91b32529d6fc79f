"""
Command line ingestion.

Run with: python -m package_ingest [--setup-index [--recreate]] [package ...]
"""

import argparse
import asyncio
import logging
import sys

from search_index import SearchIndexClient
from settings import ConfigurationError, Settings

from . import index_packages

DEFAULT_PACKAGES = [
    "@composio/client",
    "@composio/core",
    "@trigger.dev/sdk",
    "inngest",
    "@upstash/ratelimit",
    "@upstash/redis",
    "@planetscale/database",
    "hono",
    "elysia",
    "@t3-oss/env-nextjs",
    "zod",
    "oslo",
    "@vercel/kv",
    "@effect/schema",
]


async def run(args: argparse.Namespace) -> int:
    settings = Settings.from_env()

    async with SearchIndexClient(
        settings.require_index(),
        api_key=settings.elastic_api_key,
        index_name=settings.elastic_index,
        timeout=settings.http_timeout,
    ) as index:
        if args.setup_index:
            await index.create_index(recreate=args.recreate)

        summary = await index_packages(args.packages or DEFAULT_PACKAGES, settings, index=index)

    print(f"Successful: {summary.successful}/{summary.total}")
    print(f"Failed:     {summary.failed}/{summary.total}")
    for name, message in summary.failures.items():
        print(f"  - {name}: {message}")
    return 1 if summary.failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Ingest npm packages into the search index")
    parser.add_argument("packages", nargs="*", help="Package names (default: built-in corpus)")
    parser.add_argument("--setup-index", action="store_true", help="Create the index mapping first")
    parser.add_argument("--recreate", action="store_true", help="Delete and recreate an existing index")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        sys.exit(asyncio.run(run(args)))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
