"""Client for the manifest rendering (repo) server."""

from appcontroller.reposerver.client import RepoServerClientset

__all__ = ["RepoServerClientset"]
