"""Tests for flowrag.fetch — URL parsing, file policy and the fetchers."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
import pytest

from flowrag.config import FetchConfig
from flowrag.exceptions import FetchError
from flowrag.fetch import (
    FilePolicy,
    GitHubFetcher,
    GitLabFetcher,
    LocalFetcher,
    RepoRef,
    detect_platform,
    parse_repo_url,
)

if TYPE_CHECKING:
    from pathlib import Path

# --- Helpers ---


def _fetch(fetcher_cls, handler, source: str, token: str = "", **overrides):
    config = FetchConfig(**overrides)

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetcher_cls(config, client, token).fetch(source)

    return asyncio.run(go())


class TestParseRepoUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://github.com/octo/demo", RepoRef("github.com", "octo", "demo")),
            ("github.com/octo/demo.git", RepoRef("github.com", "octo", "demo")),
            ("https://GitHub.com/octo/demo/", RepoRef("github.com", "octo", "demo")),
            ("https://github.com/octo/demo/tree/main/docs", RepoRef("github.com", "octo", "demo")),
            ("git@gitlab.com:group/sub/demo.git", RepoRef("gitlab.com", "group/sub", "demo")),
            (
                "https://gitlab.com/group/demo/-/blob/main/README.md",
                RepoRef("gitlab.com", "group", "demo"),
            ),
        ],
    )
    def test_variants(self, url: str, expected: RepoRef) -> None:
        assert parse_repo_url(url) == expected

    def test_full_name(self) -> None:
        assert parse_repo_url("gitlab.com/a/b/c").full_name == "a/b/c"

    @pytest.mark.parametrize("url", ["not a url", "https://github.com/octo", ""])
    def test_invalid(self, url: str) -> None:
        with pytest.raises(FetchError, match="Invalid repository URL"):
            parse_repo_url(url)


class TestDetectPlatform:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("./docs", "local"),
            ("/srv/data", "local"),
            ("~/notes", "local"),
            ("docs/sub", "local"),
            ("github.com/octo/demo", "github"),
            ("https://gitlab.example.com/g/r", "gitlab"),
            ("git@gitlab.com:g/r.git", "gitlab"),
            ("https://git.example.com/a/b", "github"),
        ],
    )
    def test_detect(self, source: str, expected: str) -> None:
        assert detect_platform(source) == expected

    def test_default_for_unknown_host(self) -> None:
        assert detect_platform("https://git.example.com/a/b", "gitlab") == "gitlab"


class TestFilePolicy:
    def test_allowed_extensions(self) -> None:
        policy = FilePolicy(allowed_extensions=frozenset({".md"}))
        assert policy.accepts("docs/a.md")
        assert policy.rejection("src/a.py") == "extension .py not allowed"

    def test_empty_allow_list_accepts_everything_not_denied(self) -> None:
        policy = FilePolicy(denied_extensions=frozenset({".png"}))
        assert policy.accepts("a.anything")
        assert policy.rejection("logo.png") == "denied extension .png"

    def test_extensionless_files(self) -> None:
        policy = FilePolicy()
        assert policy.accepts("README")
        assert policy.accepts("tools/Makefile")
        assert policy.rejection("scripts/run") == "no extension"

    def test_size_cap(self) -> None:
        policy = FilePolicy(max_file_size=10)
        assert policy.accepts("a.md", 10)
        assert not policy.accepts("a.md", 11)

    def test_include_paths(self) -> None:
        policy = FilePolicy(include_paths=("docs",))
        assert policy.accepts("docs/a.md")
        assert policy.accepts("docs/deep/b.md")
        assert policy.rejection("docsx/a.md") == "outside included paths"
        assert not policy.accepts("src/a.md")

    def test_from_config(self) -> None:
        config = FetchConfig(
            allowed_extensions=[".MD"],
            denied_extensions=[".LOCK"],
            include_paths=["/docs/", ""],
            max_file_size_kb=2,
        )
        policy = FilePolicy.from_config(config)
        assert policy.allowed_extensions == {".md"}
        assert policy.denied_extensions == {".lock"}
        assert policy.include_paths == ("docs",)
        assert policy.max_file_size == 2048


class TestGitHubFetcher:
    def _handler(self, seen: list[httpx.Request]):
        tree = {
            "tree": [
                {"path": "README.md", "type": "blob", "size": 10},
                {"path": "src", "type": "tree"},
                {"path": "src/app.py", "type": "blob", "size": 20},
                {"path": "logo.png", "type": "blob", "size": 5},
                {"path": "broken.md", "type": "blob", "size": 3},
            ]
        }
        bodies = {"README.md": "# Demo", "src/app.py": "print('hi')"}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            path = request.url.path
            if path == "/repos/octo/demo/git/trees/main":
                return httpx.Response(200, json=tree)
            prefix = "/repos/octo/demo/contents/"
            if path.startswith(prefix) and path[len(prefix) :] in bodies:
                return httpx.Response(200, text=bodies[path[len(prefix) :]])
            return httpx.Response(500, text="boom")

        return handler

    def test_fetches_accepted_files(self) -> None:
        seen: list[httpx.Request] = []
        result = _fetch(GitHubFetcher, self._handler(seen), "https://github.com/octo/demo", "abc")

        assert {f.path: f.content for f in result.files} == {
            "README.md": "# Demo",
            "src/app.py": "print('hi')",
        }
        assert result.skipped == 1
        assert [path for path, _ in result.errors] == ["broken.md"]
        assert "HTTP 500" in result.errors[0][1]

    def test_request_shape(self) -> None:
        seen: list[httpx.Request] = []
        _fetch(GitHubFetcher, self._handler(seen), "github.com/octo/demo", "abc")

        listing = seen[0]
        assert listing.url.params["recursive"] == "1"
        assert listing.headers["Authorization"] == "token abc"
        reads = [r for r in seen if "/contents/" in r.url.path]
        assert all(r.headers["Accept"] == "application/vnd.github.raw" for r in reads)
        assert all(r.url.params["ref"] == "main" for r in reads)
        # the denied .png is never downloaded
        assert not any(r.url.path.endswith("logo.png") for r in seen)

    def test_custom_endpoint_and_ref(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"tree": []})

        result = _fetch(
            GitHubFetcher,
            handler,
            "https://ghe.example.com/octo/demo",
            endpoint="https://ghe.example.com/api/v3/",
            ref="v1.0",
        )
        assert result.files == ()
        expected = "https://ghe.example.com/api/v3/repos/octo/demo/git/trees/v1.0"
        assert str(seen[0].url).startswith(expected)

    def test_listing_failure_raises(self) -> None:
        with pytest.raises(FetchError, match="HTTP 404"):
            _fetch(GitHubFetcher, lambda r: httpx.Response(404, text="nope"), "github.com/o/r")

    def test_unexpected_listing_raises(self) -> None:
        with pytest.raises(FetchError, match="Unexpected tree response"):
            _fetch(GitHubFetcher, lambda r: httpx.Response(200, json=[]), "github.com/o/r")


class TestGitLabFetcher:
    def test_follows_pagination_and_records_errors(self) -> None:
        seen: list[httpx.Request] = []
        pages = {
            "1": (
                [
                    {"path": "README.md", "type": "blob"},
                    {"path": "docs", "type": "tree"},
                ],
                "2",
            ),
            "2": (
                [{"path": "docs/guide.md", "type": "blob"}, {"path": "gone.md", "type": "blob"}],
                "",
            ),
        }

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            url = str(request.url)
            if "/repository/tree" in url:
                items, next_page = pages[request.url.params["page"]]
                return httpx.Response(200, json=items, headers={"x-next-page": next_page})
            if "/repository/files/" in url and "gone.md" not in url:
                return httpx.Response(200, text="file body")
            return httpx.Response(404, text="missing")

        result = _fetch(
            GitLabFetcher,
            handler,
            "https://gitlab.com/group/demo",
            "tok",
            allowed_extensions=[".md"],
        )

        assert sorted(f.path for f in result.files) == ["README.md", "docs/guide.md"]
        assert [path for path, _ in result.errors] == ["gone.md"]
        tree_calls = [r for r in seen if "/repository/tree" in str(r.url)]
        assert [r.url.params["page"] for r in tree_calls] == ["1", "2"]
        assert tree_calls[0].headers["Authorization"] == "Bearer tok"

    def test_size_cap_applied_after_download(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if "/repository/tree" in str(request.url):
                return httpx.Response(200, json=[{"path": "big.md", "type": "blob"}])
            return httpx.Response(200, text="x" * 2048)

        result = _fetch(GitLabFetcher, handler, "gitlab.com/g/r", max_file_size_kb=1)
        assert result.files == ()
        assert result.errors[0][0] == "big.md"
        assert "exceeds" in result.errors[0][1]


class TestLocalFetcher:
    def test_reads_files_and_skips_hidden(self, tmp_path: Path) -> None:
        (tmp_path / "README.md").write_text("# Local", encoding="utf-8")
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.py").write_text("x = 1\n", encoding="utf-8")
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "config").write_text("[core]", encoding="utf-8")
        (tmp_path / ".env.md").write_text("secret", encoding="utf-8")
        (tmp_path / "image.png").write_bytes(b"\x89PNG\r\n")

        result = asyncio.run(LocalFetcher(FetchConfig()).fetch(str(tmp_path)))

        assert {f.path: f.content for f in result.files} == {
            "README.md": "# Local",
            "src/app.py": "x = 1\n",
        }
        assert {f.name for f in result.files} == {"README.md", "app.py"}
        assert result.skipped == 1
        assert result.errors == ()

    def test_invalid_utf8_is_replaced(self, tmp_path: Path) -> None:
        (tmp_path / "latin.txt").write_bytes(b"caf\xe9")
        result = asyncio.run(LocalFetcher(FetchConfig()).fetch(str(tmp_path)))
        assert result.files[0].content == "caf�"

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FetchError, match="Not a directory"):
            asyncio.run(LocalFetcher(FetchConfig()).fetch(str(tmp_path / "absent")))
