#!/usr/bin/env python3
"""
Tests for the source fetching strategies.

HTTP is served by httpx.MockTransport; no network access.

Run with: pytest test_source_fetcher.py  (or python3 test_source_fetcher.py)
"""

import asyncio
import base64
import io
import os
import sys
import tarfile
import tempfile
from unittest import mock

import httpx

from package_ingest import SourceFetcher, SourceFile
from package_ingest.source_fetcher import extract_source_files, is_source_path, parse_github_repo

TARBALL_URL = "https://registry.npmjs.org/widget/-/widget-1.0.0.tgz"
INDEX_JS = "export function createWidget(options) {\n  return { ...options };\n}\n"


def make_tarball(entries):
    """In-memory .tgz with the given {path: text} entries."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for path, content in entries.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(path)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


async def run_fetch(routes, repository_url=None):
    """Fetch widget@1.0.0 against canned routes; returns (result, requested urls)."""
    requested = []

    def handler(request):
        url = str(request.url).split("?")[0]
        requested.append(url)
        route = routes.get(url)
        return route() if route else httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        fetcher = SourceFetcher(http_client=client)
        result = await fetcher.fetch("widget", "1.0.0", repository_url)
    return result, requested


def test_empty_tarball_falls_through_to_unpkg():
    """Tarball without sources is treated as a miss; unpkg supplies the file."""
    tarball = make_tarball({
        "package/package.json": '{"name": "widget"}',
        "package/README.md": "# widget",
    })
    routes = {
        "https://registry.npmjs.org/widget/1.0.0": lambda: httpx.Response(200, json={"dist": {"tarball": TARBALL_URL}}),
        TARBALL_URL: lambda: httpx.Response(200, content=tarball),
        "https://unpkg.com/widget@1.0.0/src/index.js": lambda: httpx.Response(200, text=INDEX_JS),
    }

    result, requested = asyncio.run(run_fetch(routes))

    expected = SourceFile(path="/src/index.js", content=INDEX_JS, size=len(INDEX_JS.encode("utf-8")))
    assert result is not None
    assert result.strategy == "unpkg"
    assert result.files == [expected]
    assert result.total_size == expected.size
    assert not any("api.github.com" in url for url in requested)


def test_tarball_strategy_reads_sorted_sources():
    tarball = make_tarball({
        "package/src/b.ts": "export const b = 2;",
        "package/src/a.ts": "export const a = 1;",
        "package/src/a.test.ts": "test('a', () => {});",
        "package/node_modules/dep/lib/index.js": "module.exports = 1;",
        "package/index.js": "module.exports = require('./src/a');",
        "package/docs/guide.md": "# guide",
    })
    routes = {
        "https://registry.npmjs.org/widget/1.0.0": lambda: httpx.Response(200, json={"dist": {"tarball": TARBALL_URL}}),
        TARBALL_URL: lambda: httpx.Response(200, content=tarball),
    }

    result, _ = asyncio.run(run_fetch(routes))

    assert result.strategy == "tarball"
    assert [f.path for f in result.files] == ["index.js", "src/a.ts", "src/b.ts"]
    assert result.total_size == sum(f.size for f in result.files)


def test_github_strategy_uses_master_when_main_missing():
    blob = base64.b64encode(INDEX_JS.encode("utf-8")).decode("ascii")
    api = "https://api.github.com/repos/acme/widget"
    routes = {
        f"{api}/branches/master": lambda: httpx.Response(200, json={"commit": {"commit": {"tree": {"sha": "t1"}}}}),
        f"{api}/git/trees/t1": lambda: httpx.Response(200, json={"tree": [
            {"type": "blob", "path": "src/index.js", "sha": "s1", "size": 120},
            {"type": "blob", "path": "src/index.test.js", "sha": "s2", "size": 120},
            {"type": "blob", "path": "docs/guide.md", "sha": "s3", "size": 120},
            {"type": "blob", "path": "src/huge.js", "sha": "s4", "size": 200_000},
            {"type": "tree", "path": "src", "sha": "s5"},
        ]}),
        f"{api}/git/blobs/s1": lambda: httpx.Response(200, json={"content": blob, "encoding": "base64"}),
    }

    result, requested = asyncio.run(run_fetch(routes, "git+https://github.com/acme/widget.git"))

    assert result.strategy == "github"
    assert [f.path for f in result.files] == ["src/index.js"]
    assert result.files[0].content == INDEX_JS
    assert f"{api}/branches/main" in requested
    assert not any("registry.npmjs.org" in url for url in requested)


def test_github_strategy_caps_blob_downloads():
    api = "https://api.github.com/repos/acme/widget"
    tree = [
        {"type": "blob", "path": f"src/mod{i:02d}.ts", "sha": f"b{i}", "size": 100}
        for i in range(25)
    ]
    routes = {
        f"{api}/branches/main": lambda: httpx.Response(200, json={"commit": {"commit": {"tree": {"sha": "t1"}}}}),
        f"{api}/git/trees/t1": lambda: httpx.Response(200, json={"tree": tree}),
    }
    for i in range(25):
        text = f"export const mod{i:02d} = {i};\n"
        content = base64.b64encode(text.encode("utf-8")).decode("ascii")
        routes[f"{api}/git/blobs/b{i}"] = lambda content=content: httpx.Response(200, json={"content": content})

    result, requested = asyncio.run(run_fetch(routes, "acme/widget"))

    blob_requests = [url for url in requested if "/git/blobs/" in url]
    assert len(blob_requests) == 20
    assert set(blob_requests) == {f"{api}/git/blobs/b{i}" for i in range(20)}
    assert result.strategy == "github"
    assert len(result.files) == 20
    assert result.total_size == sum(len(f"export const mod{i:02d} = {i};\n") for i in range(20))


def test_all_strategies_failing_returns_none():
    result, requested = asyncio.run(run_fetch({}, "https://github.com/acme/widget"))

    assert result is None
    assert any("unpkg.com" in url for url in requested)


def test_parse_github_repo_formats():
    assert parse_github_repo("colinhacks/zod") == ("colinhacks", "zod")
    assert parse_github_repo("github:honojs/hono") == ("honojs", "hono")
    assert parse_github_repo("git+https://github.com/upstash/ratelimit-js.git") == ("upstash", "ratelimit-js")
    assert parse_github_repo("git@github.com:vercel/storage.git") == ("vercel", "storage")
    assert parse_github_repo("https://github.com/triggerdotdev/trigger.dev/tree/main/packages") == ("triggerdotdev", "trigger.dev")
    assert parse_github_repo("https://gitlab.com/acme/widget") is None
    assert parse_github_repo(None) is None
    assert parse_github_repo("") is None


def test_is_source_path():
    assert is_source_path("src/index.ts")
    assert is_source_path("packages/core/lib/client.js")
    assert is_source_path("types/index.ts")
    assert is_source_path("index.tsx")
    assert not is_source_path("src/index.spec.ts")
    assert not is_source_path("src/Button.stories.tsx")
    assert not is_source_path("scripts/build.js")
    assert not is_source_path("src/readme.md")


def test_scratch_directory_removed():
    created = []
    real_mkdtemp = tempfile.mkdtemp

    def tracking_mkdtemp(*args, **kwargs):
        path = real_mkdtemp(*args, **kwargs)
        created.append(path)
        return path

    tarball = make_tarball({"package/src/a.ts": "export const a = 1;"})
    with mock.patch("package_ingest.source_fetcher.tempfile.mkdtemp", side_effect=tracking_mkdtemp):
        files = extract_source_files(tarball)
        try:
            extract_source_files(b"not a tarball")
        except tarfile.TarError:
            pass
        else:
            raise AssertionError("corrupt tarball should raise")

    assert [f.path for f in files] == ["src/a.ts"]
    assert len(created) == 2
    assert not any(os.path.exists(path) for path in created)


def main():
    """Run all tests and report results."""
    print("=" * 50)
    print("Source Fetcher Tests")
    print("=" * 50)

    tests = [
        test_empty_tarball_falls_through_to_unpkg,
        test_tarball_strategy_reads_sorted_sources,
        test_github_strategy_uses_master_when_main_missing,
        test_github_strategy_caps_blob_downloads,
        test_all_strategies_failing_returns_none,
        test_parse_github_repo_formats,
        test_is_source_path,
        test_scratch_directory_removed,
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
