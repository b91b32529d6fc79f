#!/usr/bin/env python3
"""
Tests for symbol filtering and relevance scoring.

Run with: pytest test_scoring.py  (or python3 test_scoring.py)
"""

import sys

from package_ingest import ParsedSymbol, calculate_relevance_score, filter_relevant_symbols
from package_ingest.scoring import create_symbol_search_text


def make_symbol(implementation, name="handler", file_path="src/index.ts", **overrides):
    fields = dict(
        kind="function",
        name=name,
        signature=f"function {name}()",
        implementation=implementation,
        file_path=file_path,
        start_line=1,
        end_line=1,
    )
    fields.update(overrides)
    return ParsedSymbol(**fields)


def test_filter_drops_short_and_keeps_long():
    short = make_symbol("x" * 40, name="short")
    long = make_symbol("y" * 5000, name="long")

    kept = filter_relevant_symbols([short, long])

    assert [s.name for s in kept] == ["long"]


def test_filter_bounds_and_excluded_paths():
    symbols = [
        make_symbol("a" * 49, name="too_short"),
        make_symbol("a" * 50, name="min_ok"),
        make_symbol("a" * 10_000, name="max_ok"),
        make_symbol("a" * 10_001, name="too_long"),
        make_symbol("a" * 200, name="in_test", file_path="src/client.test.ts"),
        make_symbol("a" * 200, name="in_tests_dir", file_path="src/__tests__/client.ts"),
        make_symbol("a" * 200, name="mocked", file_path="src/mocks/server.ts"),
        make_symbol("a" * 200, name="fixture", file_path="test/fixtures/data.ts"),
    ]

    kept = filter_relevant_symbols(symbols)

    assert [s.name for s in kept] == ["min_ok", "max_ok"]


def test_filter_is_idempotent():
    symbols = [
        make_symbol("a" * n, name=f"s{n}", file_path=path)
        for n in (10, 60, 500, 12_000)
        for path in ("src/a.ts", "src/a.spec.ts")
    ]

    once = filter_relevant_symbols(symbols)

    assert filter_relevant_symbols(once) == once


def test_score_components():
    bare = make_symbol("x" * 60, name="_private")
    assert calculate_relevance_score(bare) == 0

    rich = make_symbol(
        "export async function fetchUser() { try { await api.get(); } catch (e) { throw e; } }" + " " * 40,
        name="fetchUser",
        is_exported=True,
        jsdoc="/** Fetches a user by id from the API. */",
    )
    # exported 10 + jsdoc 5 + public name 3 + length 2 + async 2 + try 1 + keyword 2
    assert calculate_relevance_score(rich) == 25


def test_score_is_deterministic_across_equal_buckets():
    """Symbols that differ only outside the scored features score the same."""
    first = make_symbol(
        "function a() { return request(1); }" + " " * 100,
        name="alpha",
        file_path="src/a.ts",
        is_exported=True,
        jsdoc="/** a sufficiently long doc comment */",
    )
    second = make_symbol(
        "function b() { return request(2); }" + " " * 300,
        name="beta",
        file_path="lib/b.js",
        is_exported=True,
        jsdoc="/** another sufficiently long comment */",
    )

    assert calculate_relevance_score(first) == calculate_relevance_score(second)
    assert calculate_relevance_score(first) == calculate_relevance_score(first)


def test_search_text_includes_metadata():
    symbol = make_symbol(
        "export function limit(key: string): Promise<boolean> { return check(key); }",
        name="limit",
        jsdoc="/** Check the limit. */",
        parameters=["key: string"],
        return_type="Promise<boolean>",
    )

    text = create_symbol_search_text(symbol)

    assert text.startswith("/** Check the limit. */")
    assert "File: src/index.ts" in text
    assert "Type: function" in text
    assert "Parameters: key: string" in text
    assert text.endswith("Returns: Promise<boolean>")


def main():
    """Run all tests and report results."""
    print("=" * 50)
    print("Scoring Tests")
    print("=" * 50)

    tests = [
        test_filter_drops_short_and_keeps_long,
        test_filter_bounds_and_excluded_paths,
        test_filter_is_idempotent,
        test_score_components,
        test_score_is_deterministic_across_equal_buckets,
        test_search_text_includes_metadata,
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
