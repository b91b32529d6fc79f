#!/usr/bin/env python3
"""
Tests for the tree-sitter symbol parser.

Requires the tree-sitter and tree-sitter-typescript wheels; no network.

Run with: pytest test_parser.py  (or python3 test_parser.py)
"""

import sys

from package_ingest import SourceFile, SourceParser, parse_source_file, parse_source_files


def test_exported_function_signature():
    """A single exported function carries parameters and return type."""
    symbols = parse_source_file(
        "src/math.ts",
        "export function add(a: number, b: number): number { return a + b; }",
    )

    assert len(symbols) == 1
    add = symbols[0]
    assert add.kind == "function"
    assert add.name == "add"
    assert add.is_exported is True
    assert add.parameters == ["a: number", "b: number"]
    assert add.return_type == "number"
    assert add.signature == "function add(a: number, b: number): number"
    assert add.implementation.startswith("export function add")
    assert add.start_line == 1
    assert add.file_path == "src/math.ts"


def test_missing_return_type_defaults_to_any():
    symbols = parse_source_file("src/log.ts", "function log(message) { console.log(message); }")

    assert len(symbols) == 1
    assert symbols[0].return_type == "any"
    assert symbols[0].parameters == ["message: any"]
    assert symbols[0].is_exported is False


def test_variables_const_and_destructuring():
    source = (
        'export const client = createClient({ url: "https://example.com" });\n'
        "let counter = 0;\n"
        "const { a, b } = options;\n"
    )
    symbols = parse_source_file("src/client.ts", source)
    by_name = {s.name: s for s in symbols}

    assert set(by_name) == {"client", "counter"}
    assert by_name["client"].kind == "const"
    assert by_name["client"].is_exported is True
    assert by_name["counter"].kind == "variable"
    assert by_name["counter"].is_exported is False
    assert by_name["counter"].start_line == 2


def test_classes_interfaces_and_types():
    source = (
        "export class Ratelimit extends Base {\n"
        "  limit() { return true; }\n"
        "}\n"
        "export interface Options { window: string }\n"
        "type Duration = number | string;\n"
    )
    symbols = parse_source_file("src/ratelimit.ts", source)
    kinds = {s.name: s.kind for s in symbols}

    assert kinds == {"Ratelimit": "class", "Options": "interface", "Duration": "type"}
    ratelimit = next(s for s in symbols if s.name == "Ratelimit")
    assert ratelimit.signature == "class Ratelimit extends Base"
    assert ratelimit.end_line == 3
    duration = next(s for s in symbols if s.name == "Duration")
    assert duration.is_exported is False


def test_nested_declarations_are_found():
    source = (
        "export function outer() {\n"
        "  function inner(x: string): string { return x; }\n"
        "  return inner;\n"
        "}\n"
    )
    names = [s.name for s in parse_source_file("src/nested.ts", source)]

    assert names == ["outer", "inner"]


def test_jsdoc_attached_to_export():
    source = (
        "import { x } from './x';\n"
        "\n"
        "/**\n"
        " * Parse data against the schema.\n"
        " */\n"
        "export function parse(data: unknown): Result { return x(data); }\n"
    )
    symbols = parse_source_file("src/parse.ts", source)

    assert len(symbols) == 1
    assert symbols[0].jsdoc == "/**\n * Parse data against the schema.\n */"
    assert symbols[0].start_line == 6


def test_jsdoc_not_borrowed_across_code():
    source = (
        "/** Belongs to first. */\n"
        "export const first = 1;\n"
        "export const second = 2;\n"
    )
    symbols = {s.name: s for s in parse_source_file("src/consts.ts", source)}

    assert symbols["first"].jsdoc == "/** Belongs to first. */"
    assert symbols["second"].jsdoc is None


def test_jsdoc_of_adjacent_functions_stays_separate():
    source = (
        "/** Adds. */\n"
        "export function add(a: number, b: number): number { return a + b; }\n"
        "/** Subtracts. */\n"
        "export function sub(a: number, b: number): number { return a - b; }\n"
    )
    symbols = {s.name: s for s in parse_source_file("src/math.ts", source)}

    assert symbols["add"].jsdoc == "/** Adds. */"
    assert symbols["sub"].jsdoc == "/** Subtracts. */"


def test_tsx_grammar_for_tsx_files():
    symbols = parse_source_file(
        "src/App.tsx",
        "export function App(): JSX.Element { return <div className=\"app\" />; }",
    )

    assert [s.name for s in symbols] == ["App"]


def test_parse_failure_is_isolated():
    """One failing file contributes nothing; the others still parse."""
    real = SourceParser()

    class FlakyParser:
        def parse(self, file_path, content):
            if file_path == "src/broken.ts":
                raise RuntimeError("grammar exploded")
            return real.parse(file_path, content)

    files = [
        SourceFile(path="src/a.ts", content="export const a = 1;", size=19),
        SourceFile(path="src/broken.ts", content="???", size=3),
        SourceFile(path="src/b.ts", content="export const b = 2;", size=19),
    ]
    symbols = parse_source_files(files, FlakyParser())

    assert [s.name for s in symbols] == ["a", "b"]


def main():
    """Run all tests and report results."""
    print("=" * 50)
    print("Parser Tests")
    print("=" * 50)

    tests = [
        test_exported_function_signature,
        test_missing_return_type_defaults_to_any,
        test_variables_const_and_destructuring,
        test_classes_interfaces_and_types,
        test_nested_declarations_are_found,
        test_jsdoc_attached_to_export,
        test_jsdoc_not_borrowed_across_code,
        test_jsdoc_of_adjacent_functions_stays_separate,
        test_tsx_grammar_for_tsx_files,
        test_parse_failure_is_isolated,
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
