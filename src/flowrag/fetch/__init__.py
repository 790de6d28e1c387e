"""Source fetchers — repository hosts and local directories."""

from flowrag.fetch.base import BaseFetcher, FetchResult, RepoRef, TreeEntry, parse_repo_url
from flowrag.fetch.github import GitHubFetcher
from flowrag.fetch.gitlab import GitLabFetcher
from flowrag.fetch.local import LocalFetcher
from flowrag.fetch.policy import FilePolicy
from flowrag.registry import default_registry

__all__ = [
    "BaseFetcher",
    "FetchResult",
    "FilePolicy",
    "GitHubFetcher",
    "GitLabFetcher",
    "LocalFetcher",
    "RepoRef",
    "TreeEntry",
    "detect_platform",
    "parse_repo_url",
]


def detect_platform(source: str, default: str = "github") -> str:
    """Guess the fetch platform from a source string."""
    if source.startswith(("/", "./", "../", "~")):
        return "local"
    if "://" not in source and not source.startswith("git@"):
        host = source.split("/", 1)[0]
        if "." not in host:
            return "local"
    lowered = source.lower()
    if "gitlab" in lowered:
        return "gitlab"
    if "github" in lowered:
        return "github"
    return default


# Register built-in fetchers
default_registry.register(
    "fetch", "github", lambda cfg, client, token="": GitHubFetcher(cfg, client, token)
)
default_registry.register(
    "fetch", "gitlab", lambda cfg, client, token="": GitLabFetcher(cfg, client, token)
)
default_registry.register("fetch", "local", lambda cfg, client, token="": LocalFetcher(cfg))
