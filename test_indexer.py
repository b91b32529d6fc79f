#!/usr/bin/env python3
"""
Tests for package document assembly and the ingestion pipeline.

Registry, fetcher and index are in-memory doubles; the parser is real.

Run with: pytest test_indexer.py  (or python3 test_indexer.py)
"""

import asyncio
import sys

from package_ingest import (
    IngestionError,
    PackageIndexer,
    RegistryAPIError,
    SourceCodeResult,
    SourceFile,
    build_package_document,
)
from package_ingest.models import PackageData

LIMITER_SOURCE = '''
/**
 * Create a sliding window limiter.
 */
export async function slidingWindow(tokens: number, window: string): Promise<Limiter> {
  try {
    return await createLimiter({ tokens, window });
  } catch (error) {
    throw new Error(`invalid window ${window}`);
  }
}

function _tiny() { return 1; }
'''

README = """# widget

```ts
import { slidingWindow } from "widget";
const limiter = slidingWindow(10, "10 s");
```
"""

DTS = """/** Create a sliding window limiter. */
export declare function slidingWindow(tokens: number, window: string): Limiter;
export interface Limiter { limit(key: string): Promise<boolean> }
"""


class FakeRegistry:
    def __init__(self, broken=()):
        self.broken = set(broken)

    async def fetch_package(self, package_name, version="latest"):
        if package_name in self.broken:
            raise RegistryAPIError(404, "Failed to fetch package.json: 404")
        return PackageData(
            package_json={
                "name": package_name,
                "version": "1.0.0",
                "description": "Rate limiting",
                "keywords": ["ratelimit"],
                "repository": {"type": "git", "url": "git+https://github.com/acme/widget.git"},
            },
            readme=README,
            dts=DTS,
        )


class FakeFetcher:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def fetch(self, package_name, version, repository_url=None):
        self.calls.append((package_name, version, repository_url))
        return self.result


class FakeIndex:
    def __init__(self, fail=False):
        self.documents = {}
        self.fail = fail

    async def index_document(self, doc_id, document):
        if self.fail:
            raise RuntimeError("cluster unavailable")
        self.documents[doc_id] = document
        return {"result": "created"}


def source_result():
    files = [SourceFile(path="src/limiter.ts", content=LIMITER_SOURCE, size=len(LIMITER_SOURCE.encode("utf-8")))]
    return SourceCodeResult(files=files, strategy="github", total_size=files[0].size)


def test_index_package_builds_grounded_document():
    index = FakeIndex()
    fetcher = FakeFetcher(source_result())
    indexer = PackageIndexer(index, FakeRegistry(), fetcher)

    document = asyncio.run(indexer.index_package("widget"))

    assert document.doc_id == "widget@1.0.0"
    assert fetcher.calls == [("widget", "1.0.0", "git+https://github.com/acme/widget.git")]
    # _tiny is below the minimum implementation length
    assert [s.name for s in document.symbols] == ["slidingWindow"]
    symbol = document.symbols[0]
    assert symbol.is_exported is True
    # exported 10 + jsdoc 5 + public name 3 + length 2 + async 2 + try 1
    assert symbol.relevance_score == 23
    assert symbol.jsdoc.startswith("/**")

    stored = index.documents["widget@1.0.0"]
    assert stored["source_strategy"] == "github"
    assert stored["total_symbols"] == 1
    assert stored["total_source_files"] == 1
    assert "slidingWindow" in stored["source_code_content"]
    assert "## Code Examples" in stored["readme_content"]
    assert stored["code_examples"].startswith('import { slidingWindow } from "widget";')
    assert [e["name"] for e in stored["exports"]] == ["Limiter"]
    assert stored["repository_url"] == "git+https://github.com/acme/widget.git"


def test_reingest_replaces_with_identical_symbols():
    index = FakeIndex()
    indexer = PackageIndexer(index, FakeRegistry(), FakeFetcher(source_result()))

    async def ingest_twice():
        await indexer.index_package("widget")
        first = dict(index.documents["widget@1.0.0"])
        await indexer.index_package("widget")
        return first, index.documents["widget@1.0.0"]

    first, second = asyncio.run(ingest_twice())

    assert len(index.documents) == 1
    for key in ("symbols", "total_symbols", "source_strategy", "source_code_content"):
        assert first[key] == second[key]


def test_no_source_means_none_strategy():
    index = FakeIndex()
    indexer = PackageIndexer(index, FakeRegistry(), FakeFetcher(None))

    document = asyncio.run(indexer.index_package("widget"))

    assert document.source_strategy == "none"
    assert document.symbols == []
    stored = index.documents["widget@1.0.0"]
    assert stored["total_symbols"] == 0
    assert stored["source_code_content"] == ""
    assert stored["readme_content"].startswith("# widget")


def test_metadata_failure_raises_without_writing():
    index = FakeIndex()
    fetcher = FakeFetcher(source_result())
    indexer = PackageIndexer(index, FakeRegistry(broken={"ghost"}), fetcher)

    try:
        asyncio.run(indexer.index_package("ghost"))
    except IngestionError as e:
        assert e.package == "ghost"
        assert e.step == "metadata"
        assert isinstance(e.cause, RegistryAPIError)
    else:
        raise AssertionError("expected IngestionError")

    assert index.documents == {}
    assert fetcher.calls == []


def test_index_write_failure_is_reported():
    indexer = PackageIndexer(FakeIndex(fail=True), FakeRegistry(), FakeFetcher(None))

    try:
        asyncio.run(indexer.index_package("widget"))
    except IngestionError as e:
        assert e.step == "index"
    else:
        raise AssertionError("expected IngestionError")


def test_batch_continues_after_failure():
    index = FakeIndex()
    indexer = PackageIndexer(index, FakeRegistry(broken={"broken"}), FakeFetcher(None))

    summary = asyncio.run(indexer.index_packages(["good", "broken", "other"]))

    assert summary.successful == 2
    assert summary.failed == 1
    assert summary.total == 3
    assert set(summary.failures) == {"broken"}
    assert set(index.documents) == {"good@1.0.0", "other@1.0.0"}


def test_build_document_drops_symbols_without_source():
    data = PackageData(package_json={"version": "2.0.0", "repository": "acme/widget"})
    empty = SourceCodeResult(files=[], strategy="tarball", total_size=0)

    document = build_package_document(data, "@acme/widget", empty, [])

    assert document.name == "@acme/widget"
    assert document.doc_id == "@acme/widget@2.0.0"
    assert document.source_strategy == "none"
    assert document.repository_url == "acme/widget"
    assert document.to_document()["indexed_at"] is not None


def main():
    """Run all tests and report results."""
    print("=" * 50)
    print("Indexer Tests")
    print("=" * 50)

    tests = [
        test_index_package_builds_grounded_document,
        test_reingest_replaces_with_identical_symbols,
        test_no_source_means_none_strategy,
        test_metadata_failure_raises_without_writing,
        test_index_write_failure_is_reported,
        test_batch_continues_after_failure,
        test_build_document_drops_symbols_without_source,
    ]

    failed = 0
    for test in tests:
        try:
            test()
            print(f"✅ {test.__name__}")
        except AssertionError as e:
            failed += 1
            print(f"❌ {test.__name__}: {e}")

    print()
    print(f"✅ Passed:  {len(tests) - failed}")
    print(f"❌ Failed:  {failed}")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
